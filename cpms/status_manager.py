#!/usr/bin/env python3
"""Status Manager module: computes and writes the ControlPlaneMachineSet status subresource."""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .decision_engine import quorum_threshold
from .fleet_observer import FleetView
from .mutator import MutationResult, OptimisticMutator
from .resources import get_metadata
from .utilities import format_timestamp

CONDITION_AVAILABLE = "Available"
CONDITION_PROGRESSING = "Progressing"
CONDITION_DEGRADED = "Degraded"

REASON_ALL_REPLICAS_AVAILABLE = "AllReplicasAvailable"
REASON_UNAVAILABLE_REPLICAS = "UnavailableReplicas"
REASON_QUORUM_UNAVAILABLE = "QuorumUnavailable"
REASON_ALL_REPLICAS_UPDATED = "AllReplicasUpdated"
REASON_NEEDS_UPDATE_REPLICAS = "NeedsUpdateReplicas"
REASON_AS_EXPECTED = "AsExpected"
REASON_INVALID_SPEC = "InvalidSpec"
REASON_INVARIANT_VIOLATION = "InvariantViolation"


def set_condition(conditions: List[Dict[str, Any]], new_condition: Dict[str, Any], now: str) -> List[Dict[str, Any]]:
    """
    Insert or replace a condition by type.

    lastTransitionTime only moves when the condition's status changes.

    Args:
        conditions: Existing condition list (not modified)
        new_condition: Condition with type, status, reason and message
        now: Timestamp to use for a transition

    Returns:
        list: New condition list
    """
    result = []
    replaced = False
    for condition in conditions:
        if condition.get("type") != new_condition["type"]:
            result.append(condition)
            continue
        merged = dict(new_condition)
        if condition.get("status") == new_condition["status"] and condition.get("lastTransitionTime"):
            merged["lastTransitionTime"] = condition["lastTransitionTime"]
        else:
            merged["lastTransitionTime"] = now
        result.append(merged)
        replaced = True

    if not replaced:
        result.append(dict(new_condition, lastTransitionTime=now))
    return result


def _condition(condition_type, status, reason, message):
    return {"type": condition_type, "status": "True" if status else "False", "reason": reason, "message": message}


def build_status(
    cpms: Dict[str, Any],
    replicas: Optional[int],
    fleet_view: Optional[FleetView],
    degraded_reason: Optional[str] = None,
    degraded_message: str = "",
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Compute the desired status for a ControlPlaneMachineSet.

    Args:
        cpms: ControlPlaneMachineSet object as last observed
        replicas: Target replica count, or None when the spec could not be parsed
        fleet_view: Current FleetView, or None when the fleet was not observed
        degraded_reason: Reason for a Degraded=True condition, None when healthy
        degraded_message: Message for the Degraded condition
        now: Timestamp for condition transitions

    Returns:
        dict: New status content
    """
    status = copy.deepcopy(cpms.get("status") or {})
    conditions = list(status.get("conditions") or [])
    status["observedGeneration"] = int(get_metadata(cpms).get("generation") or 0)

    if fleet_view is not None and replicas is not None:
        threshold = quorum_threshold(replicas, fleet_view.total_count)
        ready = fleet_view.ready_count
        status["replicas"] = fleet_view.total_count
        status["readyReplicas"] = ready
        status["updatedReplicas"] = fleet_view.updated_count
        status["unavailableReplicas"] = max(max(replicas, fleet_view.total_count) - ready, 0)

        if ready >= replicas:
            available = _condition(
                CONDITION_AVAILABLE, True, REASON_ALL_REPLICAS_AVAILABLE, f"All {ready} control plane machines are ready"
            )
        elif ready >= threshold:
            available = _condition(
                CONDITION_AVAILABLE,
                True,
                REASON_UNAVAILABLE_REPLICAS,
                f"{ready} of {replicas} control plane machines are ready, quorum of {threshold} is maintained",
            )
        else:
            available = _condition(
                CONDITION_AVAILABLE,
                False,
                REASON_QUORUM_UNAVAILABLE,
                f"Only {ready} control plane machines are ready, quorum requires {threshold}",
            )
        conditions = set_condition(conditions, available, now)

        outdated = fleet_view.total_count - fleet_view.updated_count
        if outdated or fleet_view.in_flight or fleet_view.total_count < replicas:
            progressing = _condition(
                CONDITION_PROGRESSING,
                True,
                REASON_NEEDS_UPDATE_REPLICAS,
                f"{outdated} machines need updating, {len(fleet_view.in_flight)} replacements in progress, "
                f"{max(replicas - fleet_view.total_count, 0)} machines missing",
            )
        else:
            progressing = _condition(
                CONDITION_PROGRESSING, False, REASON_ALL_REPLICAS_UPDATED, "All control plane machines are up to date"
            )
        conditions = set_condition(conditions, progressing, now)

    if degraded_reason:
        degraded = _condition(CONDITION_DEGRADED, True, degraded_reason, degraded_message)
    else:
        degraded = _condition(CONDITION_DEGRADED, False, REASON_AS_EXPECTED, "")
    conditions = set_condition(conditions, degraded, now)

    status["conditions"] = conditions
    return status


class StatusManager:
    """Writes the observed status of a ControlPlaneMachineSet through the OptimisticMutator."""

    def __init__(self, mutator: OptimisticMutator, clock: Optional[Callable[[], datetime]] = None):
        self.mutator = mutator
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def update_status(
        self,
        cpms: Dict[str, Any],
        replicas: Optional[int] = None,
        fleet_view: Optional[FleetView] = None,
        degraded_reason: Optional[str] = None,
        degraded_message: str = "",
    ) -> MutationResult:
        """
        Write the status subresource, conditioned on the object's resourceVersion.

        Returns:
            MutationResult: NO_CHANGE when the status is already current
        """
        status = build_status(
            cpms,
            replicas,
            fleet_view,
            degraded_reason=degraded_reason,
            degraded_message=degraded_message,
            now=format_timestamp(self.clock()),
        )

        def _set_status(obj):
            obj["status"] = status

        return self.mutator.mutate(cpms, _set_status, subresource="status")
