#!/usr/bin/env python3
"""Optimistic Mutator module: conflict-detected read-modify-write against the store."""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import ConflictError, StaleWriteConflict
from .resources import get_name, get_resource_version


class MutationOutcome(Enum):
    """Tagged outcome of a single mutation attempt."""

    UPDATED = "Updated"
    NO_CHANGE = "NoChange"
    CONFLICT = "Conflict"


@dataclass
class MutationResult:
    """Result of OptimisticMutator.mutate.

    Attributes:
        outcome: Which of Updated, NoChange or Conflict occurred
        obj: The stored object after an update, otherwise the caller's object unchanged
        error: StaleWriteConflict when outcome is CONFLICT, otherwise None
    """

    outcome: MutationOutcome
    obj: Dict[str, Any]
    error: Optional[StaleWriteConflict] = None

    @property
    def updated(self) -> bool:
        return self.outcome is MutationOutcome.UPDATED

    @property
    def conflicted(self) -> bool:
        return self.outcome is MutationOutcome.CONFLICT


class OptimisticMutator:
    """
    Applies a mutation to a caller-held object and submits it with compare-and-swap semantics.

    The caller's object is never modified. Its resourceVersion is the version the
    write is conditioned on, so a concurrent edit in the store surfaces as a
    CONFLICT result instead of being overwritten. The mutator never re-reads and
    retries on its own.
    """

    def __init__(self, store):
        """
        Args:
            store: Store client exposing update(obj, subresource=None)
        """
        self.store = store

    def mutate(
        self,
        obj: Dict[str, Any],
        mutate_fn: Callable[[Dict[str, Any]], None],
        subresource: Optional[str] = None,
    ) -> MutationResult:
        """
        Apply mutate_fn to a copy of obj and write it if anything changed.

        Args:
            obj: Object as last observed, including metadata.resourceVersion
            mutate_fn: Function that edits the copy in place
            subresource: Optional subresource to write (e.g. "status")

        Returns:
            MutationResult: NO_CHANGE without a store call when the copy is content-equal,
            UPDATED with the stored object after exactly one update call, or CONFLICT
            carrying a StaleWriteConflict

        Raises:
            StoreError: Any store failure other than a version conflict, unchanged
        """
        working = copy.deepcopy(obj)
        mutate_fn(working)

        if working == obj:
            return MutationResult(MutationOutcome.NO_CHANGE, obj)

        try:
            stored = self.store.update(working, subresource=subresource)
        except ConflictError as e:
            conflict = StaleWriteConflict(obj.get("kind", "object"), get_name(obj), get_resource_version(obj), cause=e)
            return MutationResult(MutationOutcome.CONFLICT, obj, conflict)

        return MutationResult(MutationOutcome.UPDATED, stored)
