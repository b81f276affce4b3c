"""
Resumable, batch-oriented enumeration of a keyspace.

A sweep starts with ScanCursor.open(), which returns an immutable
CursorState. Each next() call asks the store for one batch and returns the
ids together with a new CursorState. The previous state is spent: handing
it to next() again raises StaleCursorError.

Guarantees:
    - Ids present for the whole sweep are returned at least once
    - Ids added or removed during the sweep may or may not be returned;
      there is no snapshot
    - With a match pattern a batch may be empty without the sweep being
      over; keep calling next() until the step is exhausted

Invariants:
    - CursorState is immutable; only the sweep tracker it shares with its
      successors changes
    - An exhausted state is never advanced

How to change safely:
    - Token formats belong to the store; never parse them here
    - Abandoning a sweep needs no cleanup, keep it that way
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from .errors import StaleCursorError
from .store.base import START_TOKEN, KeyValueStore

logger = logging.getLogger(__name__)


class _Sweep:
    """Mutable generation counter shared by all states of one sweep."""

    __slots__ = ("generation",)

    def __init__(self) -> None:
        self.generation = 0


@dataclass(frozen=True)
class CursorState:
    """Position of a keyspace sweep.

    Attributes:
        keyspace: Keyspace being enumerated
        token: Store position token to resume from
        batch_size: Number of ids requested per step
        match: Optional glob filtering ids per batch
        exhausted: Whether the sweep is complete
        generation: Step number of this state within its sweep
    """

    keyspace: str
    token: str
    batch_size: int
    match: Optional[str] = None
    exhausted: bool = False
    generation: int = 0
    _sweep: _Sweep = field(default_factory=_Sweep, compare=False, repr=False)


@dataclass(frozen=True)
class ScanStep:
    """Result of one next() call.

    Attributes:
        ids: Ids of this batch (may be empty while not exhausted)
        state: State to pass to the following next() call
    """

    ids: Tuple[str, ...]
    state: CursorState

    @property
    def exhausted(self) -> bool:
        """Whether the sweep is complete."""
        return self.state.exhausted


class ScanCursor:
    """Drives batched scans of a KeyValueStore.

    Example:
        >>> cursor = ScanCursor(store)
        >>> state = cursor.open("persons", batch_size=50)
        >>> while not state.exhausted:
        ...     step = await cursor.next(state)
        ...     handle(step.ids)
        ...     state = step.state
    """

    def __init__(self, store: KeyValueStore, default_batch_size: int = 100) -> None:
        if default_batch_size <= 0:
            raise ValueError(f"default_batch_size must be positive, got {default_batch_size}")
        self._store = store
        self.default_batch_size = default_batch_size

    def open(
        self,
        keyspace: str,
        batch_size: Optional[int] = None,
        match: Optional[str] = None,
    ) -> CursorState:
        """Start a new sweep over a keyspace.

        Args:
            keyspace: Keyspace to enumerate
            batch_size: Ids per step (defaults to default_batch_size)
            match: Optional glob applied per batch by the store

        Returns:
            Initial CursorState positioned at the start token
        """
        size = batch_size if batch_size is not None else self.default_batch_size
        if size <= 0:
            raise ValueError(f"batch_size must be positive, got {size}")
        return CursorState(keyspace=keyspace, token=START_TOKEN, batch_size=size, match=match)

    async def next(self, state: CursorState) -> ScanStep:
        """Fetch the next batch of a sweep.

        Args:
            state: The most recent state of the sweep

        Returns:
            ScanStep with the ids of this batch and the successor state

        Raises:
            StaleCursorError: If state is exhausted or was already advanced
            StoreError: Passed through from the store
        """
        sweep = state._sweep
        if state.exhausted:
            raise StaleCursorError(
                "Cursor is exhausted; open a new sweep", keyspace=state.keyspace
            )
        if state.generation != sweep.generation:
            raise StaleCursorError(
                f"Cursor state {state.generation} was already advanced "
                f"(latest is {sweep.generation})",
                keyspace=state.keyspace,
            )

        # Claim the step before awaiting so a concurrent reuse is rejected
        sweep.generation += 1
        try:
            batch = await self._store.scan_batch(
                state.keyspace, state.token, state.batch_size, state.match
            )
        except BaseException:
            sweep.generation = state.generation
            raise

        exhausted = batch.exhausted or batch.next_token == START_TOKEN
        next_state = replace(
            state,
            token=batch.next_token,
            exhausted=exhausted,
            generation=sweep.generation,
        )

        logger.debug(
            "Scan step",
            extra={
                "keyspace": state.keyspace,
                "ids": len(batch.ids),
                "generation": next_state.generation,
                "exhausted": exhausted,
            },
        )
        return ScanStep(ids=batch.ids, state=next_state)

    async def iterate(
        self,
        keyspace: str,
        batch_size: Optional[int] = None,
        match: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield every id of one sweep.

        Ids may repeat under concurrent writes; see the module docstring.
        """
        state = self.open(keyspace, batch_size=batch_size, match=match)
        while not state.exhausted:
            step = await self.next(state)
            for id in step.ids:
                yield id
            state = step.state
