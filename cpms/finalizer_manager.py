#!/usr/bin/env python3
"""Finalizer Manager module for the ControlPlaneMachineSet deletion lifecycle."""

from typing import Any, Dict, Optional, Sequence, Tuple

from .errors import InvariantViolation
from .mutator import OptimisticMutator
from .print_manager import Observation
from .resources import CONTROL_PLANE_MACHINE_SET_FINALIZER, get_finalizers, get_name

FinalizerResult = Tuple[bool, Optional[Exception], Optional[Observation]]


class FinalizerManager:
    """
    Ensures the controller's finalizer is present on a ControlPlaneMachineSet, and
    removes it only once cleanup is complete.

    Both operations return (updated, error, observation). The observation is
    None when nothing should be logged, which includes the conflict path: a
    stale input is retried on the next reconcile pass, not reported.
    """

    def __init__(self, mutator: OptimisticMutator, finalizer: str = CONTROL_PLANE_MACHINE_SET_FINALIZER):
        self.mutator = mutator
        self.finalizer = finalizer
        # Latest stored object after a successful update, for callers that continue the pass
        self.last_object: Optional[Dict[str, Any]] = None

    def ensure_finalizer(self, cpms: Dict[str, Any]) -> FinalizerResult:
        """
        Add the finalizer to the ControlPlaneMachineSet if it is missing.

        Args:
            cpms: ControlPlaneMachineSet object as last observed

        Returns:
            Tuple containing:
                - updated (bool): True if the finalizer was added in this call
                - error (Optional[Exception]): StaleWriteConflict if the input was stale
                - observation (Optional[Observation]): What to log, if anything
        """
        self.last_object = cpms
        if self.finalizer in get_finalizers(cpms):
            return False, None, Observation.trace("Finalizer already present on control plane machine set")

        def _append_finalizer(obj):
            obj["metadata"]["finalizers"] = get_finalizers(obj) + [self.finalizer]

        result = self.mutator.mutate(cpms, _append_finalizer)
        if result.conflicted:
            return False, result.error, None

        self.last_object = result.obj
        return True, None, Observation.info("Added finalizer to control plane machine set")

    def remove_finalizer(self, cpms: Dict[str, Any], outstanding_machines: Sequence[str] = ()) -> FinalizerResult:
        """
        Remove the controller's finalizer, leaving any other finalizers intact.

        Args:
            cpms: ControlPlaneMachineSet object as last observed
            outstanding_machines: Names of Machines still under management that have
                not finished deleting

        Returns:
            Tuple of (updated, error, observation), as for ensure_finalizer

        Raises:
            InvariantViolation: If called while Machines are still outstanding
        """
        if outstanding_machines:
            raise InvariantViolation(
                f"Refusing to remove finalizer from control plane machine set {get_name(cpms)}: "
                f"machines still deleting: {', '.join(sorted(outstanding_machines))}"
            )

        self.last_object = cpms
        if self.finalizer not in get_finalizers(cpms):
            return False, None, Observation.trace("Finalizer already removed from control plane machine set")

        def _drop_finalizer(obj):
            obj["metadata"]["finalizers"] = [token for token in get_finalizers(obj) if token != self.finalizer]

        result = self.mutator.mutate(cpms, _drop_finalizer)
        if result.conflicted:
            return False, result.error, None

        self.last_object = result.obj
        return True, None, Observation.info("Removed finalizer from control plane machine set")
