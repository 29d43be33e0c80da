from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from .history import parse_shift
from .logger import get_logger
from .utils import day_of_week, get_period_bounds, get_week_bounds, to_local

logger = get_logger(__name__)


@dataclass
class GridRow:
    name: str
    buckets: List[Optional[int]] = field(default_factory=list)
    total: int = 0

    def add(self, index, pay):
        self.buckets[index] = (self.buckets[index] or 0) + pay
        self.total += pay

    def to_dict(self):
        return {"name": self.name, "buckets": list(self.buckets), "total": self.total}


def employee_pay(record, participant_id, roster):
    """
    What one participant took home from one saved calculation, or None.

    Breakdown groups are keyed by percentage, not by person, so the
    participant's percentage at save time is worked out again from the
    record's options and matched against the stored groups.
    """
    if not record.options.is_enabled(participant_id):
        return None
    pct = roster.effective_percentage(participant_id, record.options)
    if pct is None:
        return None
    group = record.group_for(pct)
    return group.per_person if group else None


def build_grid(history, range_start, range_end, roster, targets=None,
               bucket=day_of_week, bucket_count=7, shift=None):
    """
    Per-participant pay for records dated within [range_start, range_end].

    `bucket` maps a record's local datetime to a column index; records that
    land in the same column are summed. Columns nobody was paid in stay None.
    """
    range_start = to_local(range_start)
    range_end = to_local(range_end, range_start.tzinfo)
    participants = roster.targets(targets)
    if targets is not None:
        unknown = [pid for pid in targets if pid not in roster]
        if unknown:
            logger.warning("Ignoring participants not on the roster: %s", ", ".join(unknown))

    grid = {p.id: GridRow(name=p.name, buckets=[None] * bucket_count) for p in participants}
    wanted_shift = parse_shift(shift) if shift else None

    for record in history or []:
        when = getattr(record, "date", None)
        if when is None:
            continue
        when = to_local(when, range_start.tzinfo)
        if not range_start <= when <= range_end:
            continue
        if wanted_shift is not None and record.shift != wanted_shift:
            continue

        index = bucket(when)
        if not 0 <= index < bucket_count:
            continue

        for p in participants:
            pay = employee_pay(record, p.id, roster)
            if pay is not None:
                grid[p.id].add(index, pay)

    return grid


def build_weekly_grid(history, day, roster, targets=None, shift=None, tzinfo=None):
    """Sunday-Saturday week containing `day`, one column per weekday."""
    start, end = get_week_bounds(day, tzinfo)
    return build_grid(history, start, end, roster, targets=targets, shift=shift)


def build_period_summary(history, start_day, end_day, roster, targets=None, shift=None, tzinfo=None):
    """One column per calendar day from start_day through end_day."""
    start, end = get_period_bounds(start_day, end_day, tzinfo)
    days = (end.date() - start.date()).days + 1

    def day_index(when):
        return (when.date() - start.date()).days

    return build_grid(history, start, end, roster, targets=targets,
                      bucket=day_index, bucket_count=days, shift=shift)


def period_days(start_day, end_day, tzinfo=None):
    start, end = get_period_bounds(start_day, end_day, tzinfo)
    return [start.date() + timedelta(days=i) for i in range((end.date() - start.date()).days + 1)]


def grid_total(grid):
    return sum(row.total for row in grid.values())
