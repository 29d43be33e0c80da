import argparse
import sys
from datetime import datetime

from square import Square

from tippool.aggregation import build_period_summary, build_weekly_grid, period_days
from tippool.config import get_settings
from tippool.distribution import adjust_group, calculate
from tippool.exceptions import ConfigurationError, StoreError
from tippool.firestore import FirestoreHistoryStore
from tippool.history import JsonHistoryStore, edit_record, save_calculation
from tippool.logger import setup_logging
from tippool.payments import daily_tip_total
from tippool.reporting import export_grid, print_breakdown, print_grid
from tippool.roster import load_roster
from tippool.utils import DAYS, format_range, get_period_bounds, get_timezone, get_week_bounds, parse_when, to_date
from tippool.weekly import send_weekly_summary


def open_store(settings, roster):
    if settings.store == "firestore":
        return FirestoreHistoryStore(settings.firebase_project_id, settings.firebase_api_key, roster=roster)
    if settings.store == "json":
        return JsonHistoryStore(settings.history_file, roster=roster)
    raise ConfigurationError(f"Unknown TIPPOOL_STORE: {settings.store}")


def parse_adjustments(values):
    adjusted = {}
    for item in values or []:
        pid, _, pct = item.partition("=")
        if not pct:
            raise ConfigurationError(f"Expected ID=PERCENT, got {item!r}")
        try:
            adjusted[pid.strip()] = int(pct)
        except ValueError as e:
            raise ConfigurationError(f"Bad percentage in {item!r}") from e
    return adjusted


def total_from_square(settings, day, tzinfo):
    if not settings.square_access_token:
        raise ConfigurationError("Missing SQUARE_ACCESS_TOKEN environment variable.")
    client = Square(token=settings.square_access_token)

    location_ids = settings.square_location_ids
    if not location_ids:
        loc_resp = client.locations.list()
        location_ids = [loc.id for loc in (loc_resp.locations or [])]

    return daily_tip_total(client, location_ids, day, tzinfo)


def load_setup(store, record_id, roster):
    """Options and total of a saved calculation, to start a new one from."""
    record = store.get(record_id)
    if record is None:
        raise ConfigurationError(f"No saved calculation {record_id}")
    options = roster.default_options()
    options.enabled = dict(record.options.enabled)
    options.adjusted.update(record.options.adjusted)
    options.flags = dict(record.options.flags)
    options.designated = record.options.designated
    options.shift = record.options.shift
    return options, record.total_tips


def cmd_calc(args, settings, roster, tzinfo):
    store = None
    options = roster.default_options()
    total = None
    if args.from_record:
        store = open_store(settings, roster)
        options, total = load_setup(store, args.from_record, roster)
        print(f"📋 Loaded setup from {args.from_record}")

    if args.from_square:
        day = to_date(args.date) if args.date else datetime.now(tzinfo).date()
        total = total_from_square(settings, day, tzinfo)
        print(f"💵 Square tips for {day.isoformat()}: ${total}")
    elif args.total is not None:
        total = args.total
    if total is None:
        raise ConfigurationError("Give --total, --from-square or --from-record")

    if args.all:
        options.enabled = {pid: True for pid in roster.ids}
    elif args.staff:
        options.enabled = {pid: True for pid in args.staff}
    elif not args.from_record:
        raise ConfigurationError("Give --staff, --all or --from-record")
    options.adjusted.update(parse_adjustments(args.adjust))
    if args.flag is not None:
        options.flags = {name: True for name in args.flag}
    if args.designated:
        options.designated = args.designated
    if args.shift:
        options.shift = args.shift
    roster.validate_options(options)

    allocation = calculate(total, roster, options)
    if not allocation.breakdown:
        print("⚠️ Nothing to split: need a positive total and at least one person.")
        return 1

    for index, delta in args.tweak or []:
        try:
            allocation = adjust_group(allocation, int(index), int(delta))
        except (IndexError, ValueError) as e:
            raise ConfigurationError(f"Bad --tweak {index} {delta}: {e}") from e

    print_breakdown(allocation)

    if args.save:
        when = parse_when(args.date, tzinfo) if args.date else None
        if store is None:
            store = open_store(settings, roster)
        record_id = save_calculation(store, allocation, options, when)
        print(f"✅ Saved as {record_id}")
    return 0


def cmd_weekly(args, settings, roster, tzinfo):
    store = open_store(settings, roster)
    start, end = get_week_bounds(args.date, tzinfo)
    grid = build_weekly_grid(store.list(), start, roster, targets=args.target, shift=args.shift, tzinfo=tzinfo)
    print_grid(grid, format_range(start, end))
    if args.export:
        export_grid(grid, DAYS, prefix=f"weekly_{start:%Y%m%d}")
    return 0


def cmd_period(args, settings, roster, tzinfo):
    store = open_store(settings, roster)
    start, end = get_period_bounds(args.start, args.end, tzinfo)
    grid = build_period_summary(store.list(), start.date(), end.date(), roster,
                                targets=args.target, shift=args.shift, tzinfo=tzinfo)
    columns = [f"{d:%m/%d}" for d in period_days(start.date(), end.date(), tzinfo)]
    print_grid(grid, format_range(start, end), columns, title="Period Tips")
    if args.export:
        export_grid(grid, columns, prefix=f"period_{start:%Y%m%d}_{end:%Y%m%d}")
    return 0


def cmd_history(args, settings, roster, tzinfo):
    store = open_store(settings, roster)

    if args.action == "delete":
        ok = store.delete(args.id)
        print(f"🗑️ Deleted {args.id}" if ok else f"⚠️ No entry {args.id}")
        return 0 if ok else 1

    if args.action == "edit":
        when = parse_when(args.date, tzinfo) if args.date else None
        ok = edit_record(store, args.id, date=when, total_tips=args.total, remainder=args.remainder)
        print(f"✏️ Updated {args.id}" if ok else f"⚠️ Nothing updated for {args.id}")
        return 0 if ok else 1

    records = store.list()
    if not records:
        print("No saved calculations yet")
        return 0
    for r in records:
        local = r.date.astimezone(tzinfo)
        staff = ", ".join(r.options.enabled_ids)
        shift = f" [{r.shift.value}]" if r.shift.value != "none" else ""
        print(f"{r.id}  {local:%b %d, %Y %I:%M %p}{shift}  ${r.total_tips}  remainder ${r.remainder}")
        print(f"    {staff}")
        for g in r.breakdown:
            print(f"    {g.label:<25} {g.percentage:>3}%  {g.count} x ${g.per_person} = ${g.group_total}")
    return 0


def cmd_send_weekly(args, settings, roster, tzinfo):
    store = open_store(settings, roster)
    result = send_weekly_summary(settings, store, roster, email=args.email)
    if result.success:
        print(f"📧 Sent weekly summary for {result.week} ({result.entries} entries)")
        return 0
    print(f"❌ {result.error}")
    return 1


def build_parser():
    parser = argparse.ArgumentParser(description="Pooled tip splitter")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--roster", help="Roster JSON (defaults to TIPPOOL_ROSTER or roster.json)")
    sub = parser.add_subparsers(dest="command", required=True)

    calc = sub.add_parser("calc", help="Split a tip total")
    source = calc.add_mutually_exclusive_group()
    source.add_argument("--total", type=float, help="Total tips to split")
    source.add_argument("--from-square", action="store_true", help="Use the day's Square card tips + auto-gratuity")
    who = calc.add_mutually_exclusive_group()
    who.add_argument("--staff", nargs="+", help="Participant IDs working this shift")
    who.add_argument("--all", action="store_true", help="Everyone on the roster")
    calc.add_argument("--adjust", nargs="*", help="Adjustable percentages, e.g. david=80")
    calc.add_argument("--flag", nargs="*", help="Switch flags to turn on, e.g. udon")
    calc.add_argument("--designated", help="Participant ID given the designated reduced share")
    calc.add_argument("--shift", choices=["none", "lunch", "dinner"])
    calc.add_argument("--tweak", nargs=2, action="append", metavar=("INDEX", "DELTA"),
                      help="Adjust a group's per-person amount by DELTA")
    calc.add_argument("--from-record", metavar="ID",
                      help="Start from a saved calculation's total and staff setup")
    calc.add_argument("--date", help="Date of the shift (YYYY-MM-DD); defaults to now")
    calc.add_argument("--save", action="store_true", help="Save to history")
    calc.set_defaults(func=cmd_calc)

    weekly = sub.add_parser("weekly", help="Sunday-Saturday grid")
    weekly.add_argument("--date", help="Date inside the target week (YYYY-MM-DD)")
    weekly.add_argument("--target", nargs="*", help="Participant IDs to include")
    weekly.add_argument("--shift", choices=["lunch", "dinner"])
    weekly.add_argument("--export", action="store_true", help="Also write CSV and Excel")
    weekly.set_defaults(func=cmd_weekly)

    period = sub.add_parser("period", help="Per-day totals over a date range")
    period.add_argument("--start", required=True, help="First day (YYYY-MM-DD)")
    period.add_argument("--end", required=True, help="Last day (YYYY-MM-DD)")
    period.add_argument("--target", nargs="*", help="Participant IDs to include")
    period.add_argument("--shift", choices=["lunch", "dinner"])
    period.add_argument("--export", action="store_true", help="Also write CSV and Excel")
    period.set_defaults(func=cmd_period)

    history = sub.add_parser("history", help="List, edit or delete saved calculations")
    history.add_argument("action", choices=["list", "edit", "delete"], nargs="?", default="list")
    history.add_argument("id", nargs="?")
    history.add_argument("--date", help="New date (ISO)")
    history.add_argument("--total", type=float, help="New total")
    history.add_argument("--remainder", type=float, help="New remainder")
    history.set_defaults(func=cmd_history)

    send = sub.add_parser("send-weekly", help="Email last week's summary")
    send.add_argument("--email", help="Recipient if WEEKLY_RECIPIENT_EMAIL is not set")
    send.set_defaults(func=cmd_send_weekly)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "action", None) in ("edit", "delete") and not args.id:
        parser.error(f"history {args.action} needs an ID")

    settings = get_settings(args.env_file)
    setup_logging(settings.log_level)

    try:
        tzinfo = get_timezone(settings.timezone)
        roster = load_roster(args.roster or settings.roster_path)
        return args.func(args, settings, roster, tzinfo)
    except (ConfigurationError, StoreError) as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
