from decimal import Decimal

from dateutil import parser as date_parser
from dateutil import tz

from .distribution import plain_number
from .logger import get_logger
from .utils import day_end, day_start, to_date

logger = get_logger(__name__)


def fetch_payments(client, location_id, start_iso, end_iso):
    """
    Fetch all payments for the given date window.
    """
    try:
        pager = client.payments.list(
            begin_time=start_iso,
            end_time=end_iso,
            location_id=location_id,
            limit=100
        )
        return list(pager)
    except Exception as e:
        logger.warning("Error fetching payments for %s: %s", location_id, e)
        return []


def fetch_order_service_charges(client, order_id):
    """
    Fetch auto-gratuity (in cents) from the Order object.
    """
    if not order_id:
        return 0
    try:
        if hasattr(client.orders, "get"):
            resp = client.orders.get(order_id=order_id)
        else:
            resp = client.orders.retrieve_order(order_id=order_id)

        order = getattr(resp, "order", None)
        if not order or not getattr(order, "service_charges", None):
            return 0

        total = 0
        for sc in order.service_charges:
            if getattr(sc, "type", "") == "AUTO_GRATUITY":
                total += getattr(getattr(sc, "applied_money", None), "amount", 0) or 0

        return total

    except Exception as e:
        logger.warning("Could not fetch service charges for order %s: %s", order_id, e)
        return 0


def tips_in_cents(payments, client, start=None, end=None):
    """Card tips plus auto-gratuity for completed payments, optionally within [start, end]."""
    total = 0
    for p in payments:
        if getattr(p, "status", None) != "COMPLETED":
            continue
        created_at = getattr(p, "created_at", None)
        if start is not None and created_at:
            when = date_parser.isoparse(created_at)
            if not start <= when <= end:
                continue

        card = getattr(getattr(p, "tip_money", None), "amount", 0) or 0
        auto = fetch_order_service_charges(client, getattr(p, "order_id", None))
        total += card + auto
    return total


def daily_tip_total(client, location_ids, day, tzinfo=None):
    """
    Pooled tips for one local day across the given locations, in dollars.
    """
    day = to_date(day)
    start = day_start(day, tzinfo)
    end = day_end(day, tzinfo)
    start_iso = start.astimezone(tz.UTC).isoformat()
    end_iso = end.astimezone(tz.UTC).isoformat()

    cents = 0
    for location_id in location_ids:
        payments = fetch_payments(client, location_id, start_iso, end_iso)
        cents += tips_in_cents(payments, client, start, end)
        logger.info("Location %s: %d payments for %s", location_id, len(payments), day.isoformat())

    return plain_number(Decimal(cents) / 100)
