#!/usr/bin/env python3
"""
Replacement Decision Engine module.

Selects at most one replacement action per reconcile pass. The rollout is
delete-first and single-flight: a drifted Machine is deleted, the resulting
deficit is filled by a CreateReplacement on a later pass, and nothing else is
started while a Machine is Provisioning or Deleting.

``decide`` is a pure function of the spec and the FleetView.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import InvariantViolation
from .fleet_observer import FleetView, MachineObservation
from .resources import (
    STRATEGY_ROLLING_UPDATE,
    ControlPlaneMachineSetSpec,
    MachineRef,
    build_machine_from_template,
)


@dataclass(frozen=True)
class NoOp:
    reason: str = ""


@dataclass(frozen=True)
class CreateReplacement:
    template_machine: Dict[str, Any] = field(default_factory=dict)
    reason: str = ""


@dataclass(frozen=True)
class DeleteMachine:
    machine_ref: MachineRef
    reason: str = ""


@dataclass(frozen=True)
class WaitForHealth:
    machine_ref: MachineRef
    reason: str = ""


def quorum_threshold(replicas: int, total: Optional[int] = None) -> int:
    """
    Minimum number of Ready members required for quorum.

    Computed against the larger of the target replica count and the current
    fleet size, so a temporarily oversized fleet is held to its own quorum.
    """
    members = max(replicas, total or 0)
    return members // 2 + 1


def _replacement_priority(machine: MachineObservation):
    # Failed first, then Machines whose Node is not Ready, then healthy drifted ones
    if machine.failed:
        health_rank = 0
    elif not machine.is_ready:
        health_rank = 1
    else:
        health_rank = 2
    return (health_rank,) + machine.sort_key


def _needs_replacement(machine: MachineObservation) -> bool:
    return machine.drifted or machine.failed


def decide(spec: ControlPlaneMachineSetSpec, fleet_view: FleetView):
    """
    Compute the next action for the control plane.

    Args:
        spec: Parsed ControlPlaneMachineSet spec
        fleet_view: Current FleetView

    Returns:
        NoOp, CreateReplacement, DeleteMachine or WaitForHealth
    """
    if fleet_view.total_count < spec.replicas:
        return CreateReplacement(
            template_machine=build_machine_from_template(spec),
            reason=f"Control plane has {fleet_view.total_count} of {spec.replicas} machines, creating a replacement",
        )

    in_flight = fleet_view.in_flight
    if in_flight:
        machine = in_flight[0]
        return WaitForHealth(
            machine_ref=machine.ref,
            reason=f"Machine {machine.name} is {machine.phase}, waiting before replacing another machine",
        )

    if spec.strategy != STRATEGY_ROLLING_UPDATE:
        return NoOp(reason=f"Strategy {spec.strategy} does not replace machines automatically")

    candidates = sorted((m for m in fleet_view.machines if _needs_replacement(m)), key=_replacement_priority)
    if not candidates:
        return NoOp(reason="All control plane machines are up to date")

    candidate = candidates[0]
    # Removing a member that is not Ready leaves the Ready count unchanged
    threshold = quorum_threshold(spec.replicas, fleet_view.total_count)
    remaining_ready = fleet_view.ready_count - 1
    if candidate.is_ready and remaining_ready < threshold:
        return NoOp(
            reason=(
                f"Deferring replacement of machine {candidate.name}: {remaining_ready} ready machines would remain, "
                f"quorum requires {threshold}"
            )
        )

    state = "failed" if candidate.failed else "out of date"
    return DeleteMachine(
        machine_ref=candidate.ref,
        reason=f"Machine {candidate.name} is {state}, deleting it so it can be replaced",
    )


def validate_action(spec: ControlPlaneMachineSetSpec, fleet_view: FleetView, action) -> None:
    """
    Check a computed action against the safety invariants before it is applied.

    Raises:
        InvariantViolation: If a deletion would leave fewer Ready members than quorum,
            target a Machine outside the fleet, or start while another replacement
            is in flight
    """
    if not isinstance(action, DeleteMachine):
        return

    target = fleet_view.get(action.machine_ref.name)
    if target is None:
        raise InvariantViolation(f"Machine {action.machine_ref.name} selected for deletion is not part of the fleet")

    others_in_flight = [m.name for m in fleet_view.in_flight if m.name != target.name]
    if others_in_flight:
        raise InvariantViolation(
            f"Deleting machine {target.name} while {', '.join(others_in_flight)} is mid-replacement "
            f"would exceed one replacement in flight"
        )

    threshold = quorum_threshold(spec.replicas, fleet_view.total_count)
    remaining_ready = fleet_view.ready_count - 1
    if target.is_ready and remaining_ready < threshold:
        raise InvariantViolation(
            f"Deleting machine {target.name} would leave {remaining_ready} ready machines, below quorum of {threshold}"
        )
