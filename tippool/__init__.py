"""
Pooled tip splitting for restaurant staff.

Usage:
    python3 tippool_main.py calc --total 850 --staff sam andrew seb maria
    python3 tippool_main.py weekly --date 2025-01-10
"""
from .roster import Participant, Role, Roster, CalculationOptions, load_roster
from .distribution import allocate, adjust_group, calculate, Allocation, AllocationGroup
from .history import HistoryRecord, MemoryHistoryStore, JsonHistoryStore, load_history, save_calculation
from .aggregation import build_grid, build_weekly_grid, build_period_summary, employee_pay
from .utils import get_week_bounds, get_previous_week_bounds, format_range
