"""The dynasty season cycle as a finite state table.

Nine phases run in a fixed circular order. Each phase owns a number of
sub-phase slots and a label function; the league position is the pair
``(phase, sub_phase)``. Entering ``preseason`` starts a new season.

    preseason -> regular (Week 0..16) -> conf_champ -> bowl (4)
      -> players_leaving -> transfer_portal (Transfer Week 1..4)
      -> position_changes -> training_results -> encourage_transfers
      -> preseason (season + 1)
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable

from dynasty.models.league import Phase

# Entering this regular-season slot pauses the advance for a continue/skip choice.
WEEK15_SUB = 15
REGULAR_SEASON_WEEKS = 17

_BOWL_LABELS = ("Bowl Week 1", "Bowl Week 2", "Semifinals", "National Championship")


@dataclasses.dataclass(frozen=True)
class PhaseSpec:
    phase: Phase
    slots: int
    first_sub: int
    label: Callable[[int], str]

    @property
    def last_sub(self) -> int:
        return self.first_sub + self.slots - 1


@dataclasses.dataclass(frozen=True)
class Position:
    """A point in the cycle. ``rollover`` marks a move into a new season."""

    season: int
    phase: Phase
    sub_phase: int
    rollover: bool = False

    @property
    def week(self) -> int:
        return week_for(self.phase, self.sub_phase)

    @property
    def label(self) -> str:
        return label_for(self.phase, self.sub_phase)


def _fixed(text: str) -> Callable[[int], str]:
    return lambda _sub: text


PHASE_TABLE: tuple[PhaseSpec, ...] = (
    PhaseSpec(Phase.PRESEASON, 1, 0, _fixed("Preseason")),
    PhaseSpec(Phase.REGULAR, REGULAR_SEASON_WEEKS, 0, lambda sub: f"Week {sub}"),
    PhaseSpec(Phase.CONF_CHAMP, 1, 0, _fixed("Conference Championships")),
    PhaseSpec(Phase.BOWL, 4, 0, lambda sub: _BOWL_LABELS[sub]),
    PhaseSpec(Phase.PLAYERS_LEAVING, 1, 0, _fixed("Players Leaving")),
    PhaseSpec(Phase.TRANSFER_PORTAL, 4, 1, lambda sub: f"Transfer Week {sub}"),
    PhaseSpec(Phase.POSITION_CHANGES, 1, 0, _fixed("Position Changes")),
    PhaseSpec(Phase.TRAINING_RESULTS, 1, 0, _fixed("Training Results")),
    PhaseSpec(Phase.ENCOURAGE_TRANSFERS, 1, 0, _fixed("Encourage Transfers")),
)

_BY_PHASE: dict[Phase, PhaseSpec] = {spec.phase: spec for spec in PHASE_TABLE}

CYCLE_LENGTH = sum(spec.slots for spec in PHASE_TABLE)

# Older rows may carry these spellings.
_LEGACY_PHASES: dict[str, Phase] = {
    "regular_season": Phase.REGULAR,
    "conference_championship": Phase.CONF_CHAMP,
    "bowls": Phase.BOWL,
    "transfer": Phase.TRANSFER_PORTAL,
}


def normalize_phase(raw: str) -> Phase:
    """Convert a stored phase string (possibly legacy) to a Phase.

    Raises ValueError for anything unrecognised.
    """
    value = raw.strip().lower()
    if value in _LEGACY_PHASES:
        return _LEGACY_PHASES[value]
    return Phase(value)


def spec_for(phase: Phase) -> PhaseSpec:
    return _BY_PHASE[phase]


def is_valid_position(phase: Phase, sub_phase: int) -> bool:
    spec = _BY_PHASE[phase]
    return spec.first_sub <= sub_phase <= spec.last_sub


def label_for(phase: Phase, sub_phase: int) -> str:
    spec = _BY_PHASE[phase]
    if not is_valid_position(phase, sub_phase):
        raise ValueError(f"sub-phase {sub_phase} out of range for {phase}")
    return spec.label(sub_phase)


def week_for(phase: Phase, sub_phase: int) -> int:
    """Display week derived from the position.

    1 in preseason, the 1-based regular-season slot while in ``regular``,
    and the final regular-season week in every later phase.
    """
    if phase == Phase.PRESEASON:
        return 1
    if phase == Phase.REGULAR:
        return sub_phase + 1
    return REGULAR_SEASON_WEEKS


def next_position(season: int, phase: Phase, sub_phase: int) -> Position:
    """One step forward from ``(phase, sub_phase)``.

    Positions outside the phase's range (bad imports) are treated as the
    phase's last slot so the league still moves forward.
    """
    spec = _BY_PHASE[phase]
    following = sub_phase + 1
    if spec.first_sub <= following <= spec.last_sub:
        return Position(season, phase, following)

    index = PHASE_TABLE.index(spec)
    upcoming = PHASE_TABLE[(index + 1) % len(PHASE_TABLE)]
    if upcoming.phase == Phase.PRESEASON:
        return Position(season + 1, upcoming.phase, upcoming.first_sub, rollover=True)
    return Position(season, upcoming.phase, upcoming.first_sub)


def is_week15_entry(position: Position) -> bool:
    return position.phase == Phase.REGULAR and position.sub_phase == WEEK15_SUB


def skip_to_conference_championship(season: int) -> Position:
    spec = _BY_PHASE[Phase.CONF_CHAMP]
    return Position(season, spec.phase, spec.first_sub)


def is_forward(before: Position, after: Position) -> bool:
    """True when *after* is strictly later in the league's timeline than *before*."""
    return _ordinal(after) > _ordinal(before)


def _ordinal(position: Position) -> tuple[int, int, int]:
    return (position.season, PHASE_TABLE.index(_BY_PHASE[position.phase]), position.sub_phase)
