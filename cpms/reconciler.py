#!/usr/bin/env python3
"""Reconcile Loop Driver module for ControlPlaneMachineSet resources."""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .decision_engine import CreateReplacement, DeleteMachine, NoOp, WaitForHealth, decide, validate_action
from .errors import FatalConfigurationError, InvariantViolation, NotFoundError, TransientBackendError
from .finalizer_manager import FinalizerManager
from .fleet_observer import FleetObserver, normalize_phase
from .mutator import OptimisticMutator
from .print_manager import Observation
from .resources import (
    CPMS_RESOURCE,
    MACHINE_RESOURCE,
    PHASE_DELETING,
    get_metadata,
    get_name,
    is_being_deleted,
    is_controlled_by,
    parse_control_plane_machine_set,
)
from .status_manager import REASON_INVALID_SPEC, REASON_INVARIANT_VIOLATION, StatusManager
from .store_client import CancellableStoreClient, MachineProvisioner

RESULT_DONE = "Done"
RESULT_REQUEUE = "Requeue"


@dataclass
class ReconcileOutcome:
    """Result of a single reconcile pass.

    Attributes:
        result: RESULT_DONE or RESULT_REQUEUE
        action: The decision applied in this pass, if the pass got that far
        requeue_after: Seconds before the next pass is wanted, None for the scheduler default
        error: Conflict, transient or invariant error that shaped this outcome
        observations: Leveled messages produced during the pass, in order
    """

    result: str
    action: Any = None
    requeue_after: Optional[float] = None
    error: Optional[Exception] = None
    observations: List[Observation] = field(default_factory=list)

    @property
    def requeue(self) -> bool:
        return self.result == RESULT_REQUEUE


class _Pass:
    """Per-pass collaborators, all bound to the same cancellable store."""

    def __init__(self, store, provisioner, clock):
        self.store = store
        self.mutator = OptimisticMutator(store)
        self.finalizers = FinalizerManager(self.mutator)
        self.observer = FleetObserver(store)
        self.status = StatusManager(self.mutator, clock=clock)
        self.provisioner = provisioner
        self.observations: List[Observation] = []

    def observe(self, observation):
        if observation is not None:
            self.observations.append(observation)

    def outcome(self, result, **kwargs):
        return ReconcileOutcome(result=result, observations=self.observations, **kwargs)


class ControlPlaneMachineSetReconciler:
    """
    Drives a ControlPlaneMachineSet toward its desired state, one synchronous pass at a time.

    Normal path: EnsureFinalizer, Observe, Decide, Apply, UpdateStatus.
    Deletion path: CheckCleanupComplete, release Machines, RemoveFinalizer.

    Version conflicts and transient backend errors end the pass with a Requeue
    outcome. Any other error propagates to the caller, which owns retry and backoff.
    """

    def __init__(
        self,
        store,
        namespace: str,
        name: str = "cluster",
        provisioner_factory: Optional[Callable[[Any], Any]] = None,
        printer: Optional[Any] = None,
        clock: Optional[Callable[[], Any]] = None,
        progress_requeue_after: Optional[float] = None,
        fatal_requeue_after: Optional[float] = 600,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            store: Store client (get/list/update/create/delete)
            namespace: Namespace holding the ControlPlaneMachineSet and its Machines
            name: Name of the singleton ControlPlaneMachineSet to reconcile
            provisioner_factory: Builds the provisioning backend from the pass's store client
            printer: PrintManager instance that receives the pass's observations
            clock: Callable returning the current datetime, for status conditions
            progress_requeue_after: Delay requested while a replacement is progressing
            fatal_requeue_after: Delay requested after a configuration error
        """
        self.store = store
        self.namespace = namespace
        self.name = name
        self.provisioner_factory = provisioner_factory or MachineProvisioner
        self.printer = printer
        self.clock = clock
        self.progress_requeue_after = progress_requeue_after
        self.fatal_requeue_after = fatal_requeue_after

    def reconcile(self, name: Optional[str] = None, cancel_event=None) -> ReconcileOutcome:
        """
        Run one reconcile pass for a ControlPlaneMachineSet.

        Args:
            name: Name of the ControlPlaneMachineSet (defaults to the configured name)
            cancel_event: Optional threading.Event checked before every store call

        Returns:
            ReconcileOutcome: Done or Requeue, with the observations of the pass

        Raises:
            ReconcileCancelled: If cancel_event was set before a store call
            StoreError: For store failures other than conflicts and transient errors
        """
        name = name or self.name
        store = CancellableStoreClient(self.store, cancel_event)
        current = _Pass(store, self.provisioner_factory(store), self.clock)

        try:
            outcome = self._reconcile(current, name)
        except TransientBackendError as e:
            current.observe(Observation.warning(f"Requeueing control plane machine set {name}: {e}"))
            outcome = current.outcome(RESULT_REQUEUE, error=e)
        finally:
            if self.printer:
                self.printer.emit_all(current.observations)
        return outcome

    def _reconcile(self, current: _Pass, name: str) -> ReconcileOutcome:
        if name != self.name:
            current.observe(
                Observation.info(f"Ignoring control plane machine set {name}: only {self.name} is reconciled")
            )
            return current.outcome(RESULT_DONE)

        try:
            cpms = current.store.get(CPMS_RESOURCE, name, self.namespace)
        except NotFoundError:
            current.observe(Observation.trace(f"Control plane machine set {name} not found, nothing to reconcile"))
            return current.outcome(RESULT_DONE)

        current.observe(Observation.trace(f"Reconciling control plane machine set {name}"))

        if is_being_deleted(cpms):
            return self._reconcile_delete(current, cpms)

        _, error, observation = current.finalizers.ensure_finalizer(cpms)
        current.observe(observation)
        if error is not None:
            return self._requeue_on_conflict(current, error)
        cpms = current.finalizers.last_object

        try:
            spec = parse_control_plane_machine_set(cpms)
        except FatalConfigurationError as e:
            return self._report_invalid_spec(current, cpms, e)

        fleet_view = current.observer.observe(spec)
        current.observe(
            Observation.trace(
                f"Observed {fleet_view.total_count} control plane machines, {fleet_view.ready_count} ready, "
                f"{fleet_view.updated_count} up to date"
            )
        )

        if spec.is_active:
            action = decide(spec, fleet_view)
        else:
            action = NoOp(reason=f"Control plane machine set {name} is Inactive, no machines will be replaced")

        degraded_reason, degraded_message, violation = None, "", None
        try:
            validate_action(spec, fleet_view, action)
        except InvariantViolation as e:
            current.observe(Observation.error(f"Refusing unsafe action {type(action).__name__}: {e}"))
            action = NoOp(reason=str(e))
            degraded_reason, degraded_message, violation = REASON_INVARIANT_VIOLATION, str(e), e

        try:
            self._apply(current, action)
        except TransientBackendError as e:
            current.observe(Observation.warning(f"Provisioning backend unavailable, requeueing: {e}"))
            return current.outcome(RESULT_REQUEUE, action=action, error=e)

        result = current.status.update_status(
            cpms,
            replicas=spec.replicas,
            fleet_view=fleet_view,
            degraded_reason=degraded_reason,
            degraded_message=degraded_message,
        )
        if result.conflicted:
            return self._requeue_on_conflict(current, result.error, action=action)

        requeue_after = None
        if isinstance(action, (CreateReplacement, DeleteMachine, WaitForHealth)):
            requeue_after = self.progress_requeue_after
        current.observe(Observation.trace(f"Finished reconciling control plane machine set {name}"))
        return current.outcome(RESULT_DONE, action=action, requeue_after=requeue_after, error=violation)

    def _apply(self, current: _Pass, action) -> None:
        """Carry out a decision through the provisioning backend."""
        if isinstance(action, CreateReplacement):
            current.observe(Observation.info(action.reason))
            machine_ref = current.provisioner.create_machine(action.template_machine)
            current.observe(Observation.info(f"Created replacement machine {machine_ref.name}"))
        elif isinstance(action, DeleteMachine):
            current.observe(Observation.info(action.reason))
            if current.provisioner.delete_machine(action.machine_ref):
                current.observe(Observation.info(f"Requested deletion of machine {action.machine_ref.name}"))
            else:
                current.observe(Observation.trace(f"Machine {action.machine_ref.name} was already deleted"))
        elif isinstance(action, WaitForHealth):
            current.observe(Observation.info(action.reason))
        else:
            current.observe(Observation.trace(action.reason or "No action required"))

    def _report_invalid_spec(self, current: _Pass, cpms, error: FatalConfigurationError) -> ReconcileOutcome:
        current.observe(Observation.error(f"Invalid control plane machine set {get_name(cpms)}: {error}"))
        result = current.status.update_status(cpms, degraded_reason=REASON_INVALID_SPEC, degraded_message=str(error))
        if result.conflicted:
            return self._requeue_on_conflict(current, result.error)
        return current.outcome(
            RESULT_DONE, action=NoOp(reason=str(error)), requeue_after=self.fatal_requeue_after, error=error
        )

    def _requeue_on_conflict(self, current: _Pass, error, action=None) -> ReconcileOutcome:
        current.observe(Observation.trace(f"Requeueing after conflict: {error}"))
        return current.outcome(RESULT_REQUEUE, action=action, error=error)

    def _reconcile_delete(self, current: _Pass, cpms) -> ReconcileOutcome:
        """
        Deletion path: wait for managed Machines that are mid-deletion, release the
        rest from ownership so the control plane survives, then drop the finalizer.
        """
        uid = get_metadata(cpms).get("uid")
        owned = [m for m in current.store.list(MACHINE_RESOURCE, namespace=self.namespace) if is_controlled_by(m, uid)]

        outstanding = [get_name(m) for m in owned if normalize_phase(m) == PHASE_DELETING]
        if outstanding:
            current.observe(
                Observation.info(
                    f"Waiting for machines to finish deleting before removing finalizer: {', '.join(sorted(outstanding))}"
                )
            )
            return current.outcome(RESULT_REQUEUE, requeue_after=self.progress_requeue_after)

        for machine in owned:

            def _release(obj):
                owners = obj["metadata"].get("ownerReferences") or []
                obj["metadata"]["ownerReferences"] = [owner for owner in owners if owner.get("uid") != uid]

            result = current.mutator.mutate(machine, _release)
            if result.conflicted:
                return self._requeue_on_conflict(current, result.error)
            current.observe(Observation.info(f"Released machine {get_name(machine)} from control plane machine set"))

        _, error, observation = current.finalizers.remove_finalizer(cpms, outstanding)
        current.observe(observation)
        if error is not None:
            return self._requeue_on_conflict(current, error)
        return current.outcome(RESULT_DONE)
