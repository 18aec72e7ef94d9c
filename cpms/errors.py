#!/usr/bin/env python3
"""Error taxonomy for the Control Plane Machine Set controller."""


class ControlPlaneMachineSetError(Exception):
    """Base class for all controller errors"""


class StoreError(ControlPlaneMachineSetError):
    """The resource store rejected or failed a request"""

    def __init__(self, message, stderr=None):
        super().__init__(message)
        self.stderr = stderr


class ConflictError(StoreError):
    """The store rejected an update because the supplied resourceVersion is stale"""


class NotFoundError(StoreError):
    """The requested resource does not exist in the store"""


class StaleWriteConflict(ControlPlaneMachineSetError):
    """
    A write was attempted from an object older than the store's current version.

    Expected and recoverable: the reconcile pass is requeued and the resource is
    re-observed on the next pass.
    """

    def __init__(self, kind, name, resource_version, cause=None):
        super().__init__(
            f"stale write conflict on {kind} {name}: resourceVersion {resource_version or '<unset>'} "
            f"is not the latest version, re-observe and retry"
        )
        self.kind = kind
        self.name = name
        self.resource_version = resource_version
        self.cause = cause


class TransientBackendError(ControlPlaneMachineSetError):
    """The store or provisioning backend is temporarily unavailable"""


class InvariantViolation(ControlPlaneMachineSetError):
    """A computed action would break a safety invariant and must not be applied"""


class FatalConfigurationError(ControlPlaneMachineSetError):
    """The desired state or controller configuration is malformed"""


class ReconcileCancelled(ControlPlaneMachineSetError):
    """The reconcile pass was cancelled before a store call"""
