from selenium.webdriver.remote.webelement import WebElement

TYPEABLE_INPUT_TYPES = frozenset(
    {"textarea", "select-one", "text", "url", "tel", "search", "password", "number", "email"}
)

SET_VALUE_SCRIPT = """
const element = arguments[0];
element.value = arguments[1];
element.dispatchEvent(new Event('input', { bubbles: true }));
element.dispatchEvent(new Event('change', { bubbles: true }));
"""


def type_into(driver, element: WebElement, value: str) -> None:
    """Enter ``value`` into a form control.

    Text-like controls receive real keystrokes so their validation listeners run.
    Anything else gets its value assigned directly, followed by synthetic ``input``
    and ``change`` events so reactive front-ends notice the new value.
    """
    input_type = (element.get_property("type") or "").lower()
    if input_type in TYPEABLE_INPUT_TYPES:
        element.send_keys(value)
        return

    driver.execute_script("arguments[0].focus();", element)
    driver.execute_script(SET_VALUE_SCRIPT, element, value)
