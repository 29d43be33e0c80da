import math
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import List

from .roster import ROLE_ORDER, UNKNOWN_ROLE_ORDER, Role


def to_amount(value):
    """Decimal view of a money amount, or None if it isn't a finite number."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def plain_number(amount):
    """Back to int when whole, float otherwise."""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def role_value(role):
    return role.value if isinstance(role, Role) else role


@dataclass(frozen=True)
class AllocationGroup:
    label: str
    percentage: int
    count: int
    per_person: int
    role: str = None

    @property
    def group_total(self) -> int:
        return self.per_person * self.count

    def to_dict(self):
        return {
            "label": self.label,
            "role": role_value(self.role),
            "percentage": self.percentage,
            "count": self.count,
            "perPerson": self.per_person,
            "groupTotal": self.group_total,
        }


@dataclass(frozen=True)
class Allocation:
    breakdown: List[AllocationGroup] = field(default_factory=list)
    remainder: float = 0
    total: float = 0

    @property
    def distributed(self) -> int:
        return sum(g.group_total for g in self.breakdown)

    def to_dict(self):
        return {
            "breakdown": [g.to_dict() for g in self.breakdown],
            "remainder": self.remainder,
            "total": self.total,
        }


def _group_label(members):
    roles = {m.role for m in members}
    if len(members) == 1:
        return members[0].name
    if roles == {Role.SERVER}:
        return "Servers"
    if roles == {Role.BUSBOY}:
        return "Busboys"
    return ", ".join(m.name for m in members)


def _sort_key(group):
    return (ROLE_ORDER.get(group.role, UNKNOWN_ROLE_ORDER), -group.percentage)


def allocate(total_amount, participants) -> Allocation:
    """
    Split `total_amount` across participants by percentage weight.

    Participants sharing a percentage form one group. Each person gets the
    floor of their share; whatever the flooring leaves behind is returned as
    `remainder` and is never handed back out.
    """
    total = to_amount(total_amount)
    if not participants or total is None or total <= 0:
        return Allocation(breakdown=[], remainder=0, total=0)

    pct_sum = sum(p.percentage for p in participants)

    groups = {}
    for p in participants:
        groups.setdefault(p.percentage, []).append(p)

    breakdown = []
    for pct, members in groups.items():
        # floor(total / (sum/100) * pct/100) == floor(total * pct / sum)
        per_person = math.floor(Fraction(total) * pct / pct_sum) if pct_sum else 0
        breakdown.append(AllocationGroup(
            label=_group_label(members),
            percentage=pct,
            count=len(members),
            per_person=per_person,
            role=members[0].role,
        ))

    breakdown.sort(key=_sort_key)

    distributed = sum(g.group_total for g in breakdown)
    return Allocation(
        breakdown=breakdown,
        remainder=plain_number(total - distributed),
        total=plain_number(total),
    )


def adjust_group(allocation: Allocation, index, delta) -> Allocation:
    """
    Nudge one group's per-person amount by `delta`. A change that would take
    it below zero is ignored. The remainder follows the new distributed sum.
    """
    if not 0 <= index < len(allocation.breakdown):
        raise IndexError(f"No breakdown group at index {index}")

    breakdown = list(allocation.breakdown)
    group = breakdown[index]
    new_per_person = group.per_person + int(delta)
    if new_per_person < 0:
        return allocation
    breakdown[index] = replace(group, per_person=new_per_person)

    total = to_amount(allocation.total) or Decimal(0)
    distributed = sum(g.group_total for g in breakdown)
    return Allocation(
        breakdown=breakdown,
        remainder=plain_number(total - distributed),
        total=allocation.total,
    )


def calculate(total_amount, roster, options) -> Allocation:
    return allocate(total_amount, roster.effective_participants(options))
