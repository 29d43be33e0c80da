"""
Environment-driven settings.

Values are read from the process environment after a local `.env` file (if
any) has been loaded.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _split_ids(value):
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@dataclass
class Settings:
    timezone: str = "America/New_York"
    roster_path: str = "roster.json"
    store: str = "json"
    history_file: str = "history.json"

    firebase_project_id: Optional[str] = None
    firebase_api_key: Optional[str] = None

    emailjs_service_id: Optional[str] = None
    emailjs_template_id: Optional[str] = None
    emailjs_public_key: Optional[str] = None
    weekly_recipient_email: Optional[str] = None

    square_access_token: Optional[str] = None
    square_location_ids: List[str] = field(default_factory=list)

    log_level: str = "INFO"

    @property
    def email_configured(self) -> bool:
        return bool(self.emailjs_service_id and self.emailjs_template_id and self.emailjs_public_key)


def get_settings(env_file: Optional[str] = None, environ=None) -> Settings:
    """Build Settings from the environment.

    Passing `environ` skips `.env` loading and reads only from that mapping.
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file, override=False)
        environ = os.environ

    return Settings(
        timezone=environ.get("TIPPOOL_TZ", "America/New_York"),
        roster_path=environ.get("TIPPOOL_ROSTER", "roster.json"),
        store=environ.get("TIPPOOL_STORE", "json").strip().lower(),
        history_file=environ.get("TIPPOOL_HISTORY_FILE", "history.json"),
        firebase_project_id=environ.get("FIREBASE_PROJECT_ID") or environ.get("VITE_FIREBASE_PROJECT_ID"),
        firebase_api_key=environ.get("FIREBASE_API_KEY") or environ.get("VITE_FIREBASE_API_KEY"),
        emailjs_service_id=environ.get("EMAILJS_SERVICE_ID"),
        emailjs_template_id=environ.get("EMAILJS_TEMPLATE_ID"),
        emailjs_public_key=environ.get("EMAILJS_PUBLIC_KEY"),
        weekly_recipient_email=environ.get("WEEKLY_RECIPIENT_EMAIL"),
        square_access_token=environ.get("SQUARE_ACCESS_TOKEN"),
        square_location_ids=_split_ids(environ.get("SQUARE_LOCATION_IDS")),
        log_level=environ.get("LOG_LEVEL", "INFO"),
    )
