import requests

from .exceptions import ConfigurationError, DeliveryError
from .logger import get_logger

logger = get_logger(__name__)

EMAILJS_URL = "https://api.emailjs.com/api/v1.0/email/send"


class EmailJSNotifier:
    """Sends one templated email through the EmailJS REST relay."""

    def __init__(self, service_id, template_id, public_key, session=None, timeout=15):
        if not (service_id and template_id and public_key):
            raise ConfigurationError(
                "EmailJS not configured. Set EMAILJS_SERVICE_ID, EMAILJS_TEMPLATE_ID, EMAILJS_PUBLIC_KEY."
            )
        self.service_id = service_id
        self.template_id = template_id
        self.public_key = public_key
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, session=None):
        return cls(
            settings.emailjs_service_id,
            settings.emailjs_template_id,
            settings.emailjs_public_key,
            session=session,
        )

    def send(self, to_email, subject, text, html=None):
        payload = {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.public_key,
            "template_params": {
                "to_email": to_email,
                "subject": subject,
                "message_html": html or "",
                "message": text,
            },
        }
        try:
            resp = self.session.post(EMAILJS_URL, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DeliveryError(f"EmailJS request failed: {e}") from e
        if not resp.ok:
            raise DeliveryError(f"EmailJS failed: {resp.text}")
        logger.info("Sent '%s' to %s", subject, to_email)
