"""Tests for the season-cycle state table."""

import pytest

from dynasty.core.phases import (
    CYCLE_LENGTH,
    PHASE_TABLE,
    Position,
    is_forward,
    is_valid_position,
    is_week15_entry,
    label_for,
    next_position,
    normalize_phase,
    skip_to_conference_championship,
    week_for,
)
from dynasty.models.league import Phase


def _walk(start: Position, steps: int) -> list[Position]:
    positions = [start]
    for _ in range(steps):
        current = positions[-1]
        positions.append(next_position(current.season, current.phase, current.sub_phase))
    return positions


class TestPhaseTable:
    def test_cycle_length(self):
        assert CYCLE_LENGTH == 31

    def test_phase_order(self):
        assert [spec.phase for spec in PHASE_TABLE] == list(Phase)

    def test_transfer_portal_starts_at_one(self):
        assert not is_valid_position(Phase.TRANSFER_PORTAL, 0)
        assert is_valid_position(Phase.TRANSFER_PORTAL, 1)
        assert is_valid_position(Phase.TRANSFER_PORTAL, 4)
        assert not is_valid_position(Phase.TRANSFER_PORTAL, 5)

    def test_regular_season_range(self):
        assert is_valid_position(Phase.REGULAR, 0)
        assert is_valid_position(Phase.REGULAR, 16)
        assert not is_valid_position(Phase.REGULAR, 17)


class TestLabels:
    @pytest.mark.parametrize(
        ("phase", "sub", "label"),
        [
            (Phase.PRESEASON, 0, "Preseason"),
            (Phase.REGULAR, 0, "Week 0"),
            (Phase.REGULAR, 15, "Week 15"),
            (Phase.CONF_CHAMP, 0, "Conference Championships"),
            (Phase.BOWL, 0, "Bowl Week 1"),
            (Phase.BOWL, 2, "Semifinals"),
            (Phase.BOWL, 3, "National Championship"),
            (Phase.PLAYERS_LEAVING, 0, "Players Leaving"),
            (Phase.TRANSFER_PORTAL, 3, "Transfer Week 3"),
            (Phase.ENCOURAGE_TRANSFERS, 0, "Encourage Transfers"),
        ],
    )
    def test_label(self, phase, sub, label):
        assert label_for(phase, sub) == label

    def test_label_out_of_range(self):
        with pytest.raises(ValueError):
            label_for(Phase.BOWL, 4)


class TestWeekProjection:
    def test_preseason_is_week_one(self):
        assert week_for(Phase.PRESEASON, 0) == 1

    def test_regular_week_is_one_based(self):
        assert week_for(Phase.REGULAR, 0) == 1
        assert week_for(Phase.REGULAR, 16) == 17

    def test_postseason_pins_to_last_week(self):
        for phase in (Phase.CONF_CHAMP, Phase.BOWL, Phase.TRANSFER_PORTAL):
            assert week_for(phase, 1 if phase == Phase.TRANSFER_PORTAL else 0) == 17


class TestNextPosition:
    def test_within_phase(self):
        assert next_position(1, Phase.REGULAR, 3) == Position(1, Phase.REGULAR, 4)

    def test_crosses_phase_boundary(self):
        assert next_position(1, Phase.REGULAR, 16) == Position(1, Phase.CONF_CHAMP, 0)

    def test_enters_transfer_portal_at_week_one(self):
        assert next_position(1, Phase.PLAYERS_LEAVING, 0) == Position(1, Phase.TRANSFER_PORTAL, 1)

    def test_rollover_into_next_season(self):
        nxt = next_position(2, Phase.ENCOURAGE_TRANSFERS, 0)
        assert nxt == Position(3, Phase.PRESEASON, 0, rollover=True)

    def test_full_cycle_returns_to_preseason(self):
        positions = _walk(Position(1, Phase.PRESEASON, 0), CYCLE_LENGTH)
        assert positions[-1].phase == Phase.PRESEASON
        assert positions[-1].season == 2
        assert sum(p.rollover for p in positions) == 1

    def test_every_step_is_forward_and_valid(self):
        positions = _walk(Position(1, Phase.PRESEASON, 0), CYCLE_LENGTH * 2)
        for before, after in zip(positions, positions[1:], strict=False):
            assert is_forward(before, after)
            assert is_valid_position(after.phase, after.sub_phase)

    def test_out_of_range_sub_moves_to_next_phase(self):
        assert next_position(1, Phase.BOWL, 9) == Position(1, Phase.PLAYERS_LEAVING, 0)


class TestWeek15:
    def test_week15_entry_detected(self):
        assert is_week15_entry(next_position(1, Phase.REGULAR, 14))
        assert not is_week15_entry(next_position(1, Phase.REGULAR, 13))
        assert not is_week15_entry(next_position(1, Phase.REGULAR, 15))

    def test_skip_target(self):
        assert skip_to_conference_championship(4) == Position(4, Phase.CONF_CHAMP, 0)


class TestNormalizePhase:
    def test_canonical(self):
        assert normalize_phase("bowl") == Phase.BOWL

    def test_case_and_whitespace(self):
        assert normalize_phase("  Regular ") == Phase.REGULAR

    def test_legacy_spelling(self):
        assert normalize_phase("regular_season") == Phase.REGULAR
        assert normalize_phase("conference_championship") == Phase.CONF_CHAMP

    def test_unknown(self):
        with pytest.raises(ValueError):
            normalize_phase("offseason")
