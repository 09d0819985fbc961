#!/usr/bin/env python3
"""
Consumer start positions and commit strategy.

An :class:`OffsetPolicy` is validated and resolved before any connection is
opened; :class:`ConsumerState` tracks the per-partition read position of one
running pipe.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

from .errors import ConflictingOffsetSpec, InvalidOffset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Beginning:
    """Start at the oldest retained record."""

    def resolve(self, beginning: int, end: int) -> int:
        return beginning


@dataclass(frozen=True)
class Absolute:
    """Start at an absolute offset, clamped to the retained range."""
    offset: int

    def __post_init__(self):
        if self.offset < 0:
            raise InvalidOffset(self.offset)

    def resolve(self, beginning: int, end: int) -> int:
        return min(max(self.offset, beginning), end)


@dataclass(frozen=True)
class FromEnd:
    """Start ``count`` records before the end; ``FromEnd(0)`` reads only new records."""
    count: int = 0

    def __post_init__(self):
        if self.count < 0:
            raise InvalidOffset(self.count)

    def resolve(self, beginning: int, end: int) -> int:
        return max(end - self.count, beginning)


OffsetSpec = Union[Beginning, Absolute, FromEnd]


class CommitStrategy(Enum):
    """How consumed positions are recorded."""
    AUTO = "auto"      # committed as records are delivered
    MANUAL = "manual"  # only on an explicit commit() call


@dataclass(frozen=True)
class OffsetPolicy:
    """
    Start position plus commit strategy for a subscription.

    Use :meth:`from_options` to build one from the mutually exclusive
    ``start`` / ``end`` settings.
    """
    spec: OffsetSpec = field(default_factory=Beginning)
    commit: CommitStrategy = CommitStrategy.MANUAL
    group_id: Optional[str] = None

    @classmethod
    def from_options(
        cls,
        start: Optional[int] = None,
        end: Optional[int] = None,
        group_id: Optional[str] = None,
        commit: Optional[CommitStrategy] = None,
    ) -> "OffsetPolicy":
        """
        Build a policy from optional absolute start and end-relative settings.

        Raises:
            ConflictingOffsetSpec: both ``start`` and ``end`` were given
            InvalidOffset: a negative offset was given
        """
        if start is not None and end is not None:
            raise ConflictingOffsetSpec(start, end)

        if start is not None:
            spec: OffsetSpec = Absolute(start)
        elif end is not None:
            spec = FromEnd(end)
        else:
            spec = Beginning()

        if commit is None:
            # Committing only makes sense with a group to commit under
            commit = CommitStrategy.AUTO if group_id else CommitStrategy.MANUAL

        return cls(spec=spec, commit=commit, group_id=group_id)

    def resolve(self, beginning: int, end: int) -> int:
        """Concrete start offset for a partition with the given watermarks."""
        return self.spec.resolve(beginning, end)


@dataclass
class ConsumerState:
    """
    Read positions of one running pipe.

    ``positions`` maps partition → next offset to read, i.e. one past the
    last successfully processed record.
    """
    policy: OffsetPolicy
    positions: Dict[int, int] = field(default_factory=dict)
    committed: Dict[int, int] = field(default_factory=dict)

    @property
    def auto_commit(self) -> bool:
        return self.policy.commit is CommitStrategy.AUTO

    def advance(self, partition: int, offset: int) -> None:
        """Record that the message at ``offset`` was processed."""
        self.positions[partition] = offset + 1

    def pending(self) -> Dict[int, int]:
        """Positions that moved since the last commit."""
        return {
            partition: position
            for partition, position in self.positions.items()
            if self.committed.get(partition) != position
        }

    def mark_committed(self, positions: Dict[int, int]) -> None:
        self.committed.update(positions)
        logger.debug(f"Committed positions: {positions}")
