import logging
from typing import Optional

import requests

PUSHBULLET_API_URL = "https://api.pushbullet.com/v2/pushes"
DEFAULT_TITLE = "US Visa Appointment Notification"


class Notifier:
    """Best-effort alert delivery: always logs, pushes only when a token is configured."""

    def __init__(
        self,
        token: Optional[str],
        *,
        title: str = DEFAULT_TITLE,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.token = (token or "").strip() or None
        self.title = title
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_push_configured(self) -> bool:
        return self.token is not None

    def notify(self, message: str, agent: str) -> bool:
        logging.info(message)

        if not self.is_push_configured:
            logging.debug("Skipping push notification - no Pushbullet token configured.")
            return False

        headers = {
            "Access-Token": self.token,
            "User-Agent": agent,
        }
        payload = {
            "title": self.title,
            "type": "note",
            "body": message,
        }

        try:
            response = self.session.post(PUSHBULLET_API_URL, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "unknown"
            logging.warning("NotificationDeliveryFailed: Pushbullet returned HTTP %s", status)
            if status in (401, 403):
                logging.warning("Please verify your Pushbullet access token.")
            return False
        except requests.RequestException as exc:
            logging.warning("NotificationDeliveryFailed: %s", exc)
            return False

        logging.info("Push notification sent successfully")
        return True
