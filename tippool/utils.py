from datetime import date, datetime, time, timedelta

from dateutil import tz, parser as date_parser

LOCAL_TZ = tz.gettz("America/New_York")

DAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def get_timezone(name=None):
    if not name:
        return LOCAL_TZ
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {name}")
    return zone


def to_local(dt, tzinfo=None):
    """
    Naive datetimes are taken to already be local wall-clock time.
    """
    tzinfo = tzinfo or LOCAL_TZ
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tzinfo)
    return dt.astimezone(tzinfo)


def parse_when(value, tzinfo=None):
    """
    Accepts ISO strings, datetimes, dates and epoch milliseconds.
    Returns a local aware datetime, or None when the value can't be read.
    """
    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime):
            return to_local(value, tzinfo)
        if isinstance(value, date):
            return day_start(value, tzinfo)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=tz.UTC).astimezone(tzinfo or LOCAL_TZ)
        if isinstance(value, str):
            return to_local(date_parser.isoparse(value.strip()), tzinfo)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def to_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value:
        return datetime.strptime(value, "%Y-%m-%d").date()
    return None


def day_start(day, tzinfo=None):
    return datetime.combine(day, time.min).replace(tzinfo=tzinfo or LOCAL_TZ)


def day_end(day, tzinfo=None):
    return datetime.combine(day, time.max).replace(tzinfo=tzinfo or LOCAL_TZ)


def day_of_week(dt):
    """0 = Sunday ... 6 = Saturday."""
    return (dt.weekday() + 1) % 7


def get_week_bounds(target=None, tzinfo=None):
    """
    Sunday 00:00 through Saturday 23:59:59.999999 (local) of the week
    containing `target` (a date, datetime or YYYY-MM-DD string).
    """
    tzinfo = tzinfo or LOCAL_TZ
    if target is None:
        target = datetime.now(tzinfo)
    if isinstance(target, datetime):
        target = to_local(target, tzinfo).date()
    else:
        target = to_date(target)

    sunday = target - timedelta(days=day_of_week(target))
    return day_start(sunday, tzinfo), day_end(sunday + timedelta(days=6), tzinfo)


def get_previous_week_bounds(now=None, tzinfo=None):
    """The last fully completed Sunday-Saturday week before `now`."""
    start, _ = get_week_bounds(now, tzinfo)
    return get_week_bounds(start.date() - timedelta(days=7), tzinfo)


def get_period_bounds(start_day, end_day, tzinfo=None):
    start_day, end_day = to_date(start_day), to_date(end_day)
    if end_day < start_day:
        start_day, end_day = end_day, start_day
    return day_start(start_day, tzinfo), day_end(end_day, tzinfo)


def format_range(start, end):
    return f"{start:%b} {start.day} – {end:%b} {end.day}, {end.year}"
