import argparse
import configparser
import enum
import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import requests
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys

from browser_session import create_chrome_driver
from config_wizard import run_cli_setup_wizard
from element_locator import ElementLocator, SelectorStrategy
from errors import (
    NavigationTimeoutError,
    PollTimeoutError,
    PortalHttpError,
    RunCancelledError,
)
from form_input import type_into
from logging_utils import configure_logging, redact_secrets
from notification_utils import Notifier
from polling import wait_for_condition
from run_supervisor import RunOutcome, run_with_timeout, terminate
from selector_registry import apply_selector_overrides
from visibility import scroll_into_view_if_needed

PORTAL_BASE_URL = "https://ais.usvisa-info.com"
SESSION_COOKIE_NAME = "_yatri_session"
VIEWPORT_SIZE = (2078, 1479)


class WorkflowState(enum.Enum):
    INIT = "init"
    VIEWPORT_SET = "viewport_set"
    NAVIGATED = "navigated"
    AUTHENTICATING = "authenticating"
    SUBMITTING_LOGIN = "submitting_login"
    QUERYING = "querying"
    DECIDED = "decided"
    CLOSED = "closed"


@dataclass(frozen=True)
class RunConfig:
    region: str
    threshold_date: date
    username: str
    password: str
    application_id: str
    consulate_id: str
    pushbullet_token: Optional[str] = None
    element_timeout: float = 5.0
    navigation_timeout: float = 60.0
    run_timeout: float = 60.0
    headless: bool = True
    selectors_path: str = "selectors.yml"
    artifacts_dir: Optional[str] = "artifacts"

    REQUIRED_KEYS = (
        "REGION",
        "CURRENT_APPOINTMENT_DATE",
        "EMAIL",
        "PASSWORD",
        "APPLICATION_ID",
        "CONSULATE_ID",
    )

    @classmethod
    def load(cls, path: str = "config.ini", overrides: Optional[Dict[str, Optional[str]]] = None) -> "RunConfig":
        """Build the run configuration from ``config.ini``, the environment and CLI overrides.

        Later sources win: file values are replaced by environment variables of the
        same name, which are replaced by non-empty ``overrides``.
        """
        parser = configparser.ConfigParser()
        parser.optionxform = str

        if not parser.read(path):
            logging.debug("No configuration file at %s; relying on environment and command line", path)

        raw_defaults = {k.upper(): v for k, v in parser["DEFAULT"].items()}
        cli_values = {k.upper(): str(v) for k, v in (overrides or {}).items() if v not in (None, "")}

        def _get(key: str, fallback: Optional[str] = None) -> Optional[str]:
            value = cli_values.get(key, os.getenv(key, raw_defaults.get(key, fallback)))
            if value is None:
                return None
            return str(value).strip()

        missing = [key for key in cls.REQUIRED_KEYS if not _get(key)]
        if missing:
            raise KeyError("Configuration missing required keys: " + ", ".join(sorted(missing)))

        def _to_bool(value: str) -> bool:
            return str(value).strip().lower() in {"1", "true", "yes", "on"}

        problems: List[str] = []

        def _get_seconds(key: str, fallback: float) -> float:
            raw = _get(key, str(fallback))
            try:
                seconds = float(raw)
            except ValueError:
                problems.append(f"{key} must be a number of seconds")
                return fallback
            if seconds <= 0:
                problems.append(f"{key} must be greater than zero")
            return seconds

        threshold: Optional[date] = None
        try:
            threshold = datetime.strptime(_get("CURRENT_APPOINTMENT_DATE"), "%Y-%m-%d").date()
        except ValueError:
            problems.append("CURRENT_APPOINTMENT_DATE must be formatted as YYYY-MM-DD")

        application_id = _get("APPLICATION_ID")
        consulate_id = _get("CONSULATE_ID")
        if not application_id.isdigit():
            problems.append("APPLICATION_ID must be numeric")
        if not consulate_id.isdigit():
            problems.append("CONSULATE_ID must be numeric")

        region = _get("REGION").lower()
        if not region.isalpha():
            problems.append("REGION must be a country-region code such as 'ca'")

        element_timeout = _get_seconds("ELEMENT_TIMEOUT_SECONDS", 5.0)
        navigation_timeout = _get_seconds("NAVIGATION_TIMEOUT_SECONDS", 60.0)
        run_timeout = _get_seconds("RUN_TIMEOUT_SECONDS", 60.0)

        if problems:
            raise ValueError("Invalid configuration: " + "; ".join(problems))

        return cls(
            region=region,
            threshold_date=threshold,
            username=_get("EMAIL"),
            password=_get("PASSWORD"),
            application_id=application_id,
            consulate_id=consulate_id,
            pushbullet_token=_get("PUSHBULLET_TOKEN") or None,
            element_timeout=element_timeout,
            navigation_timeout=navigation_timeout,
            run_timeout=run_timeout,
            headless=_to_bool(_get("HEADLESS", "True")),
            selectors_path=_get("SELECTORS_PATH", "selectors.yml"),
            artifacts_dir=_get("ARTIFACTS_DIR", "artifacts") or None,
        )

    @staticmethod
    def _mask(value: str, *, keep: int = 2) -> str:
        if not value:
            return ""
        if len(value) <= keep * 2:
            return value[0] + "***" if len(value) > 1 else "*"
        return f"{value[:keep]}***{value[-keep:]}"

    def masked_summary(self) -> str:
        return (
            f"username={self._mask(self.username)} | region={self.region} | "
            f"application={self.application_id} | consulate={self.consulate_id} | "
            f"current_date={self.threshold_date.isoformat()} | "
            f"push={'enabled' if self.pushbullet_token else 'disabled'} | headless={self.headless}"
        )

    @property
    def login_url(self) -> str:
        return f"{PORTAL_BASE_URL}/en-{self.region}/niv/users/sign_in"

    @property
    def appointment_url(self) -> str:
        return f"{PORTAL_BASE_URL}/en-{self.region}/niv/schedule/{self.application_id}/appointment"

    @property
    def available_days_url(self) -> str:
        return f"{self.appointment_url}/days/{self.consulate_id}.json?appointments[expedite]=false"


def parse_slot_dates(payload) -> List[date]:
    if not isinstance(payload, list):
        raise PortalHttpError(f"Unexpected slot listing payload: {type(payload).__name__}")
    slots: List[date] = []
    for item in payload:
        try:
            slots.append(datetime.strptime(str(item["date"]), "%Y-%m-%d").date())
        except (KeyError, TypeError, ValueError) as exc:
            raise PortalHttpError(f"Malformed slot entry in listing: {item!r}") from exc
    return slots


def decide_outcome(slots: Sequence[date], threshold: date) -> Tuple[RunOutcome, Optional[date]]:
    """Compare the earliest offered slot with the date currently held."""
    if not slots:
        return RunOutcome.NO_SLOTS_AT_ALL, None
    earliest = min(slots)
    if earliest < threshold:
        return RunOutcome.SCHEDULED_EARLIER_FOUND, earliest
    return RunOutcome.NO_EARLIER_AVAILABLE, earliest


class SessionWorkflow:
    """One pass of sign in, slot query, decision and notification.

    Every step re-resolves the element it needs; handles are never reused across steps.
    """

    EMAIL_SELECTORS: List[SelectorStrategy] = [
        ((By.XPATH, "//input[@id=//label[normalize-space()='Email *']/@for]"),),
        ((By.ID, "user_email"),),
        ((By.NAME, "user[email]"),),
        ((By.CSS_SELECTOR, "form input[type='email']"),),
    ]

    PASSWORD_SELECTORS: List[SelectorStrategy] = [
        ((By.XPATH, "//input[@id=//label[normalize-space()='Password']/@for]"),),
        ((By.ID, "user_password"),),
        ((By.NAME, "user[password]"),),
        ((By.CSS_SELECTOR, "form input[type='password']"),),
    ]

    CONSENT_SELECTORS: List[SelectorStrategy] = [
        ((By.CSS_SELECTOR, "#sign_in_form > div.radio-checkbox-group.margin-top-30 > label > div"),),
        ((By.CSS_SELECTOR, "label[for='policy_confirmed']"),),
        ((By.ID, "policy_confirmed"),),
    ]

    SIGN_IN_SELECTORS: List[SelectorStrategy] = [
        ((By.NAME, "commit"),),
        ((By.CSS_SELECTOR, "#new_user > p:nth-child(9) > input"),),
        ((By.CSS_SELECTOR, "input[type='submit']"),),
        ((By.XPATH, "//input[@value='Sign In']"),),
    ]

    ALERT_SELECTORS: List[Tuple[str, str]] = [
        (By.CSS_SELECTOR, ".alert"),
        (By.CSS_SELECTOR, "[role='alert']"),
        (By.CSS_SELECTOR, ".flash"),
        (By.CSS_SELECTOR, ".error, .errors"),
    ]

    CONSENT_CHECKBOX = (By.ID, "policy_confirmed")

    def __init__(
        self,
        cfg: RunConfig,
        *,
        driver_factory: Callable[[], object],
        notifier: Notifier,
        http_session: Optional[requests.Session] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.cfg = cfg
        self.driver_factory = driver_factory
        self.notifier = notifier
        self.http = http_session or requests.Session()
        self.cancel_event = cancel_event or threading.Event()
        self.state = WorkflowState.INIT
        self.driver = None
        self.user_agent = ""
        self._close_lock = threading.Lock()
        apply_selector_overrides(self, cfg.selectors_path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def run(self) -> RunOutcome:
        started = time.monotonic()
        try:
            outcome = self._run_steps()
            logging.info("Run finished with outcome %s in %.2fs", outcome.name, time.monotonic() - started)
            return outcome
        except RunCancelledError:
            logging.warning("Run cancelled while in state %s", self.state.name)
            return RunOutcome.TIMED_OUT
        except Exception as exc:  # noqa: BLE001
            if self.cancel_event.is_set():
                logging.debug("Abandoned run stopped in state %s: %s", self.state.name, exc)
                return RunOutcome.TIMED_OUT
            logging.exception(
                "Run failed in state %s after %.2fs: %s",
                self.state.name,
                time.monotonic() - started,
                exc,
            )
            self._capture_artifact(f"error_{type(exc).__name__.lower()}")
            return RunOutcome.FAILED
        finally:
            self.close()

    def abort(self) -> None:
        """Ask the run to stop at its next step and release the browser right away."""
        self.cancel_event.set()
        self.close()

    def close(self) -> None:
        with self._close_lock:
            driver, self.driver = self.driver, None
        self.state = WorkflowState.CLOSED
        if driver is None:
            return
        try:
            driver.quit()
            logging.info("Browser session closed")
        except Exception:  # noqa: BLE001
            logging.debug("Driver quit raised; ignoring to continue cleanup.")

    def _advance(self, state: WorkflowState) -> None:
        if self.cancel_event.is_set():
            raise RunCancelledError(f"Cancelled before entering {state.name}")
        logging.debug("Workflow state %s -> %s", self.state.name, state.name)
        self.state = state

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _run_steps(self) -> RunOutcome:
        logging.info("Initializing browser session...")
        driver = self.driver_factory()
        with self._close_lock:
            self.driver = driver
        if self.cancel_event.is_set():
            raise RunCancelledError("Cancelled while the browser was starting")
        logging.info("Browser session initialized.")

        self._advance(WorkflowState.VIEWPORT_SET)
        driver.set_window_size(*VIEWPORT_SIZE)
        logging.info("Viewport set.")

        self._advance(WorkflowState.NAVIGATED)
        self._navigate_to_login(driver)

        self._advance(WorkflowState.AUTHENTICATING)
        self._fill_login_form(driver)

        self._advance(WorkflowState.SUBMITTING_LOGIN)
        self._submit_login(driver)

        self._advance(WorkflowState.QUERYING)
        slots = self._fetch_available_dates(driver)

        self._advance(WorkflowState.DECIDED)
        return self._decide(slots)

    def _navigate_to_login(self, driver) -> None:
        logging.info("Navigating to login page: %s", self.cfg.login_url)
        try:
            driver.get(self.cfg.login_url)
        except TimeoutException as exc:
            raise NavigationTimeoutError(
                f"Login page did not load within {self.cfg.navigation_timeout}s"
            ) from exc
        logging.info("Navigated to login page.")

    def _resolve(self, driver, strategies: List[SelectorStrategy], description: str):
        locator = ElementLocator(driver, self.cfg.element_timeout)
        element = locator.wait_for_selectors(strategies, description=description)
        scroll_into_view_if_needed(driver, element, self.cfg.element_timeout)
        return element

    def _fill_login_form(self, driver) -> None:
        email_field = self._resolve(driver, self.EMAIL_SELECTORS, "username input")
        email_field.click()
        logging.info("Username input clicked.")

        email_field = self._resolve(driver, self.EMAIL_SELECTORS, "username input")
        type_into(driver, email_field, self.cfg.username)
        logging.info("Username typed.")

        email_field.send_keys(Keys.TAB)
        logging.info("Tabbed to password input.")

        password_field = self._resolve(driver, self.PASSWORD_SELECTORS, "password input")
        type_into(driver, password_field, self.cfg.password)
        logging.info("Password typed.")

        if self._consent_already_given(driver):
            logging.info("Agreement checkbox already ticked.")
            return
        consent = self._resolve(driver, self.CONSENT_SELECTORS, "agreement checkbox")
        consent.click()
        logging.info("Agreement checkbox ticked.")

    def _consent_already_given(self, driver) -> bool:
        for checkbox in driver.find_elements(*self.CONSENT_CHECKBOX):
            try:
                if checkbox.is_selected():
                    return True
            except WebDriverException:
                continue
        return False

    def _submit_login(self, driver) -> None:
        sign_in = self._resolve(driver, self.SIGN_IN_SELECTORS, "sign in button")
        sign_in.click()
        logging.info("Login button clicked. Navigating...")

        try:
            wait_for_condition(
                driver,
                lambda: "sign_in" not in driver.current_url.lower(),
                self.cfg.navigation_timeout,
                description="post-login redirect",
            )
        except PollTimeoutError as exc:
            self._log_alerts(driver)
            raise NavigationTimeoutError(
                "Login did not redirect away from the sign in page - check credentials, CAPTCHA, or website changes"
            ) from exc
        logging.info("Login flow appears successful; current URL: %s", driver.current_url)

    def _fetch_available_dates(self, driver) -> List[date]:
        logging.info("Fetching available dates...")
        cookie = driver.get_cookie(SESSION_COOKIE_NAME)
        if not cookie:
            raise PortalHttpError(f"Session cookie {SESSION_COOKIE_NAME} missing after login; not authenticated")
        self.user_agent = driver.execute_script("return navigator.userAgent;") or ""

        headers = {
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "Accept-Language": "en-US,en;q=0.9",
            "Cookie": f"{cookie['name']}={cookie['value']}",
            "Referer": self.cfg.appointment_url,
            "User-Agent": self.user_agent,
            "X-Requested-With": "XMLHttpRequest",
        }

        try:
            response = self.http.get(
                self.cfg.available_days_url,
                headers=headers,
                timeout=self.cfg.navigation_timeout,
            )
        except requests.Timeout as exc:
            raise NavigationTimeoutError(f"Slot listing request timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise PortalHttpError(f"Slot listing request failed: {exc}") from exc

        if response.status_code == 304:
            raise PortalHttpError("Slot listing returned 304 Not Modified but no cached copy exists", 304)
        if not response.ok:
            raise PortalHttpError(
                f"Slot listing returned HTTP {response.status_code}", response.status_code
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PortalHttpError("Slot listing response was not valid JSON", response.status_code) from exc
        return parse_slot_dates(payload)

    def _decide(self, slots: List[date]) -> RunOutcome:
        outcome, earliest = decide_outcome(slots, self.cfg.threshold_date)

        if outcome is RunOutcome.NO_SLOTS_AT_ALL:
            logging.info("There are no available dates for consulate with id %s", self.cfg.consulate_id)
            return outcome

        logging.info(
            "There are available dates. Your current date is %s. The first available date is %s",
            self.cfg.threshold_date.isoformat(),
            earliest.isoformat(),
        )
        if outcome is RunOutcome.SCHEDULED_EARLIER_FOUND:
            self.notifier.notify(
                f"There is an earlier date available for the appointment! {earliest.isoformat()}",
                self.user_agent,
            )
        else:
            logging.info("No earlier date available yet. First available date: %s", earliest.isoformat())
        return outcome

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def _log_alerts(self, driver) -> None:
        for by, value in self.ALERT_SELECTORS:
            for alert in driver.find_elements(by, value):
                try:
                    text = alert.text.strip()
                except WebDriverException:
                    continue
                if text:
                    logging.error("Page alert: %s", text)

    def _capture_artifact(self, label: str) -> None:
        driver = self.driver
        if driver is None or not self.cfg.artifacts_dir:
            return

        artifacts_dir = Path(self.cfg.artifacts_dir)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        base = artifacts_dir / f"{timestamp}_{label.replace(' ', '_')}"

        try:
            artifacts_dir.mkdir(parents=True, exist_ok=True)
            base.with_suffix(".html").write_text(driver.page_source, encoding="utf-8")
        except Exception as exc:  # noqa: BLE001
            logging.debug("Failed to persist page source artifact: %s", exc)

        try:
            driver.save_screenshot(str(base.with_suffix(".png")))
        except Exception as exc:  # noqa: BLE001
            logging.debug("Failed to capture screenshot artifact: %s", exc)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="US Visa Appointment Checker (single run)")
    parser.add_argument("--config", default="config.ini", help="Path to the configuration file")
    parser.add_argument("-r", "--region", help="Country-region code of the portal, e.g. 'ca'")
    parser.add_argument("-d", "--date", help="Currently held appointment date (YYYY-MM-DD)")
    parser.add_argument("-u", "--username", help="Portal login email")
    parser.add_argument("-p", "--password", help="Portal login password")
    parser.add_argument("-a", "--application-id", help="Numeric schedule/application id")
    parser.add_argument("-c", "--consulate-id", help="Numeric consulate id")
    parser.add_argument("-n", "--token", help="Pushbullet access token (optional)")
    parser.add_argument(
        "--no-headless",
        dest="headless",
        action="store_false",
        default=None,
        help="Run Chrome in visible mode (useful for debugging selectors).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit one JSON object per log line")
    parser.add_argument("--setup", action="store_true", help="Run the interactive configuration wizard and exit")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_arg_parser().parse_args(argv)
    log_path = configure_logging(debug=args.debug, json_logs=args.json_logs)
    logging.info("Appointment checker logs will rotate under %s", log_path.resolve())

    if args.setup:
        run_cli_setup_wizard(args.config)
        return

    overrides = {
        "REGION": args.region,
        "CURRENT_APPOINTMENT_DATE": args.date,
        "EMAIL": args.username,
        "PASSWORD": args.password,
        "APPLICATION_ID": args.application_id,
        "CONSULATE_ID": args.consulate_id,
        "PUSHBULLET_TOKEN": args.token,
        "HEADLESS": None if args.headless is None else str(args.headless),
    }
    try:
        cfg = RunConfig.load(args.config, overrides)
    except (KeyError, ValueError) as exc:
        logging.error("Configuration error: %s", exc)
        raise SystemExit(1) from exc

    redact_secrets(cfg.username, cfg.password, cfg.pushbullet_token)
    logging.info("Configuration summary: %s", cfg.masked_summary())

    workflow = SessionWorkflow(
        cfg,
        driver_factory=partial(
            create_chrome_driver,
            headless=cfg.headless,
            navigation_timeout=cfg.navigation_timeout,
        ),
        notifier=Notifier(cfg.pushbullet_token),
    )
    outcome = run_with_timeout(workflow, cfg.run_timeout)
    terminate(outcome)


if __name__ == "__main__":
    main()
