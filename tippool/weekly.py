"""
Weekly summary job: last week's grid, emailed.

Meant to run from a scheduler every Sunday morning. Missing configuration
and relay failures are reported in the returned WeeklyRun, not retried.
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from .aggregation import build_grid
from .exceptions import ConfigurationError, DeliveryError
from .logger import get_logger
from .notify import EmailJSNotifier
from .reporting import format_grid_html, format_grid_text
from .utils import format_range, get_previous_week_bounds, get_timezone

logger = get_logger(__name__)

SETTINGS_DOC = "weekly-email"


@dataclass
class WeeklyRun:
    success: bool
    week: Optional[str] = None
    entries: int = 0
    error: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def resolve_recipient(settings, store, email=None):
    """Environment first, then an explicit address, then the settings document."""
    recipient = settings.weekly_recipient_email or email
    if recipient:
        return recipient
    try:
        return store.get_setting(SETTINGS_DOC, "email")
    except Exception as e:
        logger.warning("Could not read recipient from settings: %s", e)
        return None


def send_weekly_summary(settings, store, roster, notifier=None, email=None, now=None):
    tzinfo = get_timezone(settings.timezone)

    if notifier is None:
        try:
            notifier = EmailJSNotifier.from_settings(settings)
        except ConfigurationError as e:
            logger.error("%s", e)
            return WeeklyRun(success=False, error=str(e))

    recipient = resolve_recipient(settings, store, email)
    if not recipient:
        error = "No recipient email. Set it in settings or WEEKLY_RECIPIENT_EMAIL."
        logger.error(error)
        return WeeklyRun(success=False, error=error)

    start, end = get_previous_week_bounds(now or datetime.now(tzinfo), tzinfo)
    week_label = format_range(start, end)

    history = [r for r in store.list() if start <= r.date <= end]
    grid = build_grid(history, start, end, roster)

    try:
        notifier.send(
            recipient,
            f"Weekly Tips Summary: {week_label}",
            format_grid_text(grid, week_label),
            format_grid_html(grid, week_label),
        )
    except DeliveryError as e:
        logger.error("Weekly summary for %s not sent: %s", week_label, e)
        return WeeklyRun(success=False, week=week_label, entries=len(history), error=str(e))

    logger.info("Weekly summary for %s sent to %s (%d entries)", week_label, recipient, len(history))
    return WeeklyRun(success=True, week=week_label, entries=len(history))
