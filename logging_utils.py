import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

LOG_DIR = Path("logs")
LOG_FILENAME = "appointment_checker.log"

NOISY_LOGGERS = [
    "selenium",
    "selenium.webdriver.remote.remote_connection",
    "urllib3",
    "urllib3.connectionpool",
    "requests",
    "WDM",
    "werkzeug",
]

REDACTED = "***"


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(*, debug: bool = False, json_logs: bool = False, log_dir: Optional[Path] = None) -> Path:
    level = logging.DEBUG if debug else logging.INFO
    directory = Path(log_dir) if log_dir is not None else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME

    stream_handler = logging.StreamHandler()
    file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handlers = [file_handler, stream_handler]

    if json_logs:
        formatter = JsonLogFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    return log_path


class SecretRedactingFilter(logging.Filter):
    """Mask known credential values in records before any handler writes them."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        # longest first so a secret containing another is masked whole
        self.secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def redact_secrets(*secrets: Optional[str]) -> SecretRedactingFilter:
    """Attach a redacting filter to every handler on the root logger."""
    redactor = SecretRedactingFilter(secret for secret in secrets if secret)
    for handler in logging.getLogger().handlers:
        handler.addFilter(redactor)
    return redactor
