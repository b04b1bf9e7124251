import configparser
from getpass import getpass


def run_cli_setup_wizard(config_path: str = "config.ini", template_path: str = "config.ini.template") -> None:
    parser = configparser.ConfigParser()
    parser.optionxform = str
    # Re-running the wizard starts from the current config when there is one.
    parser.read([template_path, config_path])
    defaults = parser["DEFAULT"]

    def _get(name: str, fallback: str = "") -> str:
        for key, value in defaults.items():
            if key.upper() == name:
                return str(value).strip()
        return fallback

    def _set(name: str, value: str) -> None:
        for key in list(defaults.keys()):
            if key.upper() == name:
                defaults[key] = value
                return
        defaults[name] = value

    def _prompt(name: str, label: str, *, secret: bool = False, required: bool = True) -> str:
        current = _get(name)
        prompt = f"{label}"
        if current and not secret:
            prompt += f" [{current}]"
        elif current:
            prompt += " [keep current]"
        prompt += ": "
        while True:
            raw = getpass(prompt) if secret else input(prompt)
            value = raw.strip() or current
            if value or not required:
                _set(name, value)
                return value
            print("This value is required.")

    print("CLI Setup Wizard")
    print("Press Enter to accept defaults shown in brackets.\n")
    _prompt("EMAIL", "AIS login email")
    _prompt("PASSWORD", "AIS login password", secret=True)
    _prompt("REGION", "Portal region code (example: ca)")
    _prompt("CURRENT_APPOINTMENT_DATE", "Current appointment date (YYYY-MM-DD)")
    _prompt("APPLICATION_ID", "Schedule id (number in the appointment URL)")
    _prompt("CONSULATE_ID", "Consulate id (example: 94 for Toronto)")
    _prompt("PUSHBULLET_TOKEN", "Pushbullet access token (leave empty to only log)", secret=True, required=False)

    with open(config_path, "w", encoding="utf-8") as handle:
        parser.write(handle)
    print(f"\nSaved configuration to {config_path}")
