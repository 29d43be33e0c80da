"""
Staff roster and the per-calculation percentage rules.

The roster is plain configuration (see roster.json) and is passed into both
the calculator and the weekly/period summaries rather than imported as
module constants.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import ConfigurationError


class Role(str, Enum):
    SERVER = "server"
    TRAINEE = "trainee"
    BUSBOY = "busboy"
    OTHER = "other"


ROLE_ORDER = {Role.SERVER: 0, Role.TRAINEE: 1, Role.BUSBOY: 2, Role.OTHER: 3}
UNKNOWN_ROLE_ORDER = 9


def parse_role(value):
    """Known roles become Role members; anything else is kept as given."""
    try:
        return Role(value)
    except ValueError:
        return value


def parse_percentage(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid percentage: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Percentage must be a whole number: {value!r}")
        value = int(value)
    pct = int(value)
    if not 0 <= pct <= 100:
        raise ValueError(f"Percentage out of range 0-100: {pct}")
    return pct


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    percentage: int
    role: str = Role.OTHER

    def __post_init__(self):
        object.__setattr__(self, "percentage", parse_percentage(self.percentage))
        object.__setattr__(self, "role", parse_role(self.role))


@dataclass(frozen=True)
class AdjustableRule:
    """Participant whose percentage is picked per calculation (the trainee)."""
    participant_id: str
    choices: Tuple[int, ...] = ()
    legacy_field: Optional[str] = None


@dataclass(frozen=True)
class SwitchRule:
    """Boolean flag that moves one participant to a fixed alternate percentage."""
    flag: str
    participant_id: str
    percentage: int
    legacy_field: Optional[str] = None


@dataclass(frozen=True)
class DesignatedRule:
    """At most one eligible participant per calculation gets a reduced percentage."""
    percentage: int
    roles: Tuple[str, ...] = (Role.BUSBOY,)
    label: str = ""
    legacy_field: Optional[str] = None


@dataclass
class CalculationOptions:
    """The toggles and modifiers chosen for one calculation."""
    enabled: Dict[str, bool] = field(default_factory=dict)
    adjusted: Dict[str, int] = field(default_factory=dict)
    flags: Dict[str, bool] = field(default_factory=dict)
    designated: Optional[str] = None
    shift: str = "none"

    def is_enabled(self, participant_id) -> bool:
        return bool(self.enabled.get(participant_id))

    @property
    def enabled_ids(self) -> List[str]:
        return [pid for pid, on in self.enabled.items() if on]


@dataclass
class Roster:
    participants: List[Participant]
    adjustable: List[AdjustableRule] = field(default_factory=list)
    switches: List[SwitchRule] = field(default_factory=list)
    designated: Optional[DesignatedRule] = None
    summary_targets: List[str] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for p in self.participants:
            if p.id in seen:
                raise ConfigurationError(f"Duplicate participant id in roster: {p.id}")
            seen.add(p.id)
        for rule in self.adjustable:
            self._require(rule.participant_id)
        for rule in self.switches:
            self._require(rule.participant_id)
        for pid in self.summary_targets:
            self._require(pid)

    def _require(self, participant_id):
        if self.get(participant_id) is None:
            raise ConfigurationError(f"Roster rule references unknown participant: {participant_id}")

    def get(self, participant_id) -> Optional[Participant]:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    def __contains__(self, participant_id):
        return self.get(participant_id) is not None

    @property
    def ids(self) -> List[str]:
        return [p.id for p in self.participants]

    def targets(self, requested: Optional[Sequence[str]] = None) -> List[Participant]:
        """Participants to show in a summary, in roster order when defaulted."""
        if requested is None:
            requested = self.summary_targets or self.ids
        return [p for p in (self.get(pid) for pid in requested) if p is not None]

    def adjustable_rule(self, participant_id) -> Optional[AdjustableRule]:
        return next((r for r in self.adjustable if r.participant_id == participant_id), None)

    def switch_rule(self, participant_id) -> Optional[SwitchRule]:
        return next((r for r in self.switches if r.participant_id == participant_id), None)

    def is_designated(self, participant, options: CalculationOptions) -> bool:
        rule = self.designated
        return bool(rule and options.designated == participant.id and participant.role in rule.roles)

    def effective_percentage(self, participant_id, options: CalculationOptions) -> Optional[int]:
        participant = self.get(participant_id)
        if participant is None:
            return None

        if self.is_designated(participant, options):
            return self.designated.percentage

        if self.adjustable_rule(participant_id):
            value = options.adjusted.get(participant_id)
            if value is None:
                return participant.percentage
            try:
                return parse_percentage(value)
            except (TypeError, ValueError):
                return participant.percentage

        switch = self.switch_rule(participant_id)
        if switch and options.flags.get(switch.flag):
            return switch.percentage

        return participant.percentage

    def effective_participants(self, options: CalculationOptions) -> List[Participant]:
        staff = []
        for p in self.participants:
            if not options.is_enabled(p.id):
                continue
            pct = self.effective_percentage(p.id, options)
            name = p.name
            if self.is_designated(p, options) and self.designated.label:
                name = f"{p.name} ({self.designated.label})"
            staff.append(replace(p, name=name, percentage=pct))
        return staff

    def default_options(self) -> CalculationOptions:
        return CalculationOptions(
            adjusted={r.participant_id: self.get(r.participant_id).percentage for r in self.adjustable}
        )

    def validate_options(self, options: CalculationOptions):
        for pid in options.enabled_ids:
            self._require(pid)
        for pid, pct in options.adjusted.items():
            rule = self.adjustable_rule(pid)
            if rule is None:
                raise ConfigurationError(f"{pid} does not take an adjustable percentage")
            try:
                pct = parse_percentage(pct)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"{pid}: {e}") from e
            if rule.choices and pct not in rule.choices:
                raise ConfigurationError(f"{pct}% is not an allowed choice for {pid}: {list(rule.choices)}")
        known_flags = {r.flag for r in self.switches}
        for name in options.flags:
            if name not in known_flags:
                raise ConfigurationError(f"Unknown flag: {name}")
        if options.designated is not None:
            participant = self.get(options.designated)
            if participant is None or not self.designated or participant.role not in self.designated.roles:
                raise ConfigurationError(f"{options.designated} can't be designated")


def roster_from_dict(data) -> Roster:
    try:
        participants = [
            Participant(
                id=str(p["id"]),
                name=p.get("name", p["id"]),
                percentage=p["percentage"],
                role=p.get("role", Role.OTHER),
            )
            for p in data.get("participants", [])
        ]
        adjustable = [
            AdjustableRule(
                participant_id=a["participant"],
                choices=tuple(parse_percentage(c) for c in a.get("choices", [])),
                legacy_field=a.get("legacy_field"),
            )
            for a in data.get("adjustable", [])
        ]
        switches = [
            SwitchRule(
                flag=s["flag"],
                participant_id=s["participant"],
                percentage=parse_percentage(s["percentage"]),
                legacy_field=s.get("legacy_field"),
            )
            for s in data.get("switches", [])
        ]
        designated = None
        if data.get("designated"):
            d = data["designated"]
            designated = DesignatedRule(
                percentage=parse_percentage(d["percentage"]),
                roles=tuple(parse_role(r) for r in d.get("roles", [Role.BUSBOY])),
                label=d.get("label", ""),
                legacy_field=d.get("legacy_field"),
            )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid roster configuration: {e}") from e

    return Roster(
        participants=participants,
        adjustable=adjustable,
        switches=switches,
        designated=designated,
        summary_targets=list(data.get("summary_targets", [])),
    )


def load_roster(path) -> Roster:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Roster file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Roster file is not valid JSON: {path}: {e}") from e
    return roster_from_dict(data)
