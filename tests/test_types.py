from __future__ import annotations

import pytest

from settle import NOT_FOUND, PollSpec

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class TestPollSpec:
    def test_states_are_frozensets(self):
        spec = PollSpec(pending=["PENDING"], target=("READY",))
        assert spec.pending == frozenset({"PENDING"})
        assert spec.target == frozenset({"READY"})

    def test_single_string_is_one_state(self):
        spec = PollSpec(pending="DELETING", target=NOT_FOUND)
        assert spec.pending == {"DELETING"}
        assert spec.target == {NOT_FOUND}

    def test_expected_states(self):
        spec = PollSpec(pending={NOT_FOUND}, target={"ENABLED"})
        assert spec.expected == {NOT_FOUND, "ENABLED"}

    def test_rejects_negative_refresh_grace(self):
        with pytest.raises(ValueError, match="refresh_grace"):
            PollSpec(target={"READY"}, refresh_grace=-1)

    def test_requires_target(self):
        with pytest.raises(ValueError, match="target"):
            PollSpec(pending={"PENDING"})

    def test_rejects_overlap(self):
        with pytest.raises(ValueError, match="both pending and target: READY"):
            PollSpec(pending={"READY"}, target={"READY"})

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"timeout": 0},
            {"poll_interval": 0},
            {"delay": -1},
            {"min_interval": 5, "max_interval": 1},
            {"not_found_checks": -1},
            {"continuous_target_occurrence": 0},
        ],
    )
    def test_rejects_invalid_fields(self, kwargs):
        with pytest.raises(ValueError):
            PollSpec(target={"READY"}, **kwargs)

    def test_frozen(self):
        spec = PollSpec(target={"READY"})
        with pytest.raises(AttributeError):
            spec.timeout = 10  # type: ignore[misc]
