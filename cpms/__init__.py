#!/usr/bin/env python3
"""
Control Plane Machine Set Controller - Modular Components.

This package reconciles a ControlPlaneMachineSet against the control plane
Machines of a cluster, replacing at most one Machine at a time without ever
dropping the control plane below quorum.

Modules:
- print_manager: Output formatting, leveled Observations and the debug flag
- errors: Error taxonomy (conflicts, transient backend errors, invariant violations)
- utilities: oc command execution with retry logic and shared helpers
- resources: ControlPlaneMachineSet spec parsing, object helpers, machine templates
- store_client: oc-backed resource store, cancellation wrapper, machine provisioner
- mutator: Conflict-detected read-modify-write updates
- finalizer_manager: Finalizer add/remove for the deletion lifecycle
- fleet_observer: Point-in-time view of control plane Machines and Node readiness
- decision_engine: Quorum-safe, single-flight replacement decisions
- status_manager: Status subresource and conditions
- reconciler: Reconcile pass driver
- controller_runner: Reconcile scheduling with requeue and backoff
- arguments_parser: Command-line argument parsing
- configuration_manager: YAML and command-line controller settings
"""

from .arguments_parser import ArgumentsParser
from .configuration_manager import build_controller_config, load_controller_config
from .controller_runner import ReconcileRunner
from .decision_engine import (
    CreateReplacement,
    DeleteMachine,
    NoOp,
    WaitForHealth,
    decide,
    quorum_threshold,
    validate_action,
)
from .errors import (
    ConflictError,
    ControlPlaneMachineSetError,
    FatalConfigurationError,
    InvariantViolation,
    NotFoundError,
    ReconcileCancelled,
    StaleWriteConflict,
    StoreError,
    TransientBackendError,
)
from .finalizer_manager import FinalizerManager
from .fleet_observer import FleetObserver, FleetView, MachineObservation
from .mutator import MutationOutcome, MutationResult, OptimisticMutator
from .print_manager import DEBUG_MODE, Observation, PrintManager, printer
from .reconciler import RESULT_DONE, RESULT_REQUEUE, ControlPlaneMachineSetReconciler, ReconcileOutcome
from .resources import (
    CONTROL_PLANE_MACHINE_SET_FINALIZER,
    ControlPlaneMachineSetSpec,
    MachineRef,
    parse_control_plane_machine_set,
)
from .status_manager import StatusManager
from .store_client import CancellableStoreClient, MachineProvisioner, OcStoreClient
from .utilities import execute_oc_command, format_runtime

__all__ = [
    "ArgumentsParser",
    "build_controller_config",
    "load_controller_config",
    "ReconcileRunner",
    "CreateReplacement",
    "DeleteMachine",
    "NoOp",
    "WaitForHealth",
    "decide",
    "quorum_threshold",
    "validate_action",
    "ConflictError",
    "ControlPlaneMachineSetError",
    "FatalConfigurationError",
    "InvariantViolation",
    "NotFoundError",
    "ReconcileCancelled",
    "StaleWriteConflict",
    "StoreError",
    "TransientBackendError",
    "FinalizerManager",
    "FleetObserver",
    "FleetView",
    "MachineObservation",
    "MutationOutcome",
    "MutationResult",
    "OptimisticMutator",
    "DEBUG_MODE",
    "Observation",
    "PrintManager",
    "printer",
    "RESULT_DONE",
    "RESULT_REQUEUE",
    "ControlPlaneMachineSetReconciler",
    "ReconcileOutcome",
    "CONTROL_PLANE_MACHINE_SET_FINALIZER",
    "ControlPlaneMachineSetSpec",
    "MachineRef",
    "parse_control_plane_machine_set",
    "StatusManager",
    "CancellableStoreClient",
    "MachineProvisioner",
    "OcStoreClient",
    "execute_oc_command",
    "format_runtime",
]
