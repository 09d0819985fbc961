"""Tests for start position resolution and consumer state."""

import pytest

from pqstream.errors import ConfigError, ConflictingOffsetSpec, InvalidOffset
from pqstream.offsets import (
    Absolute, Beginning, CommitStrategy, ConsumerState, FromEnd, OffsetPolicy,
)


class TestOffsetSpecs:

    def test_beginning(self):
        assert Beginning().resolve(5, 20) == 5

    def test_absolute_is_clamped(self):
        assert Absolute(10).resolve(5, 20) == 10
        assert Absolute(0).resolve(5, 20) == 5
        assert Absolute(100).resolve(5, 20) == 20

    def test_from_end(self):
        assert FromEnd(0).resolve(0, 20) == 20
        assert FromEnd(3).resolve(0, 20) == 17
        assert FromEnd(50).resolve(5, 20) == 5

    def test_negative_offsets_rejected(self):
        with pytest.raises(InvalidOffset):
            Absolute(-1)
        with pytest.raises(InvalidOffset):
            FromEnd(-2)


class TestOffsetPolicy:

    def test_defaults_to_beginning(self):
        policy = OffsetPolicy.from_options()
        assert policy.spec == Beginning()
        assert policy.commit is CommitStrategy.MANUAL

    def test_start_and_end(self):
        assert OffsetPolicy.from_options(start=4).spec == Absolute(4)
        assert OffsetPolicy.from_options(end=2).spec == FromEnd(2)

    def test_conflicting_settings(self):
        with pytest.raises(ConflictingOffsetSpec) as exc_info:
            OffsetPolicy.from_options(start=1, end=2)
        assert isinstance(exc_info.value, ConfigError)
        assert "Cannot specify both" in str(exc_info.value)

    def test_group_enables_auto_commit(self):
        policy = OffsetPolicy.from_options(end=0, group_id="ch-consumer")
        assert policy.commit is CommitStrategy.AUTO
        assert policy.group_id == "ch-consumer"

    def test_explicit_commit_strategy(self):
        policy = OffsetPolicy.from_options(group_id="g", commit=CommitStrategy.MANUAL)
        assert policy.commit is CommitStrategy.MANUAL

    def test_resolve_uses_start_position(self):
        assert OffsetPolicy.from_options(end=1).resolve(0, 10) == 9


class TestConsumerState:

    def test_advance_stores_next_position(self):
        state = ConsumerState(OffsetPolicy())
        state.advance(0, 4)
        state.advance(1, 9)
        assert state.positions == {0: 5, 1: 10}

    def test_pending_only_reports_moved_partitions(self):
        state = ConsumerState(OffsetPolicy.from_options(group_id="g"))
        assert state.auto_commit

        state.advance(0, 1)
        state.advance(1, 1)
        state.mark_committed(state.pending())
        assert state.pending() == {}

        state.advance(1, 2)
        assert state.pending() == {1: 3}
