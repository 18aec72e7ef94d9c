#!/usr/bin/env python3
"""Fleet Observer module: point-in-time view of control plane Machines and their Nodes."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .resources import (
    CONTROL_PLANE_NODE_SELECTOR,
    MACHINE_RESOURCE,
    NODE_RESOURCE,
    PHASE_DELETING,
    PHASE_FAILED,
    PHASE_PROVISIONED,
    PHASE_PROVISIONING,
    PHASE_RUNNING,
    ControlPlaneMachineSetSpec,
    MachineRef,
    get_controller_reference,
    get_metadata,
    is_being_deleted,
    is_controlled_by,
    provider_spec_matches,
)
from .utilities import get_node_ready_status, parse_timestamp

# Machines without a creationTimestamp sort last
_UNKNOWN_CREATION = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class MachineObservation:
    """Observed state of a single control plane Machine."""

    name: str
    namespace: str
    uid: str
    phase: str
    drifted: bool
    node_ready: Optional[bool]
    node_name: Optional[str] = None
    creation_timestamp: Optional[datetime] = None
    owned: bool = True

    @property
    def ref(self) -> MachineRef:
        return MachineRef(name=self.name, namespace=self.namespace, uid=self.uid)

    @property
    def is_ready(self) -> bool:
        """A Ready member is Running with a Node reporting Ready."""
        return self.phase == PHASE_RUNNING and self.node_ready is True

    @property
    def in_flight(self) -> bool:
        """True while the Machine is mid-replacement (being created or being removed)."""
        return self.phase in (PHASE_PROVISIONING, PHASE_DELETING)

    @property
    def failed(self) -> bool:
        return self.phase == PHASE_FAILED

    @property
    def sort_key(self):
        """Oldest first, name as the final tie-break."""
        return (self.creation_timestamp or _UNKNOWN_CREATION, self.name)


@dataclass(frozen=True)
class FleetView:
    """Snapshot of the control plane fleet for a single reconcile pass."""

    machines: List[MachineObservation] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.machines)

    @property
    def ready_count(self) -> int:
        return sum(1 for machine in self.machines if machine.is_ready)

    @property
    def updated_count(self) -> int:
        return sum(1 for machine in self.machines if not machine.drifted)

    @property
    def in_flight(self) -> List[MachineObservation]:
        return sorted((m for m in self.machines if m.in_flight), key=lambda m: m.sort_key)

    def get(self, name: str) -> Optional[MachineObservation]:
        for machine in self.machines:
            if machine.name == name:
                return machine
        return None


def normalize_phase(machine: Dict[str, Any]) -> str:
    """
    Reduce a Machine's lifecycle to the phases the decision logic cares about.

    A deletionTimestamp wins over any reported phase. A Machine that has not
    reported a phase yet, or is Provisioned but not Running, is still Provisioning.
    """
    if is_being_deleted(machine):
        return PHASE_DELETING
    phase = (machine.get("status") or {}).get("phase") or PHASE_PROVISIONING
    if phase == PHASE_PROVISIONED:
        return PHASE_PROVISIONING
    return phase


def build_node_index(nodes: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Index Nodes by name and by provider ID.

    Args:
        nodes: Node objects

    Returns:
        dict: Lookup from "name:<node name>" and "providerID:<provider id>" to Node
    """
    index = {}
    for node in nodes:
        index[f"name:{get_metadata(node).get('name')}"] = node
        provider_id = (node.get("spec") or {}).get("providerID")
        if provider_id:
            index[f"providerID:{provider_id}"] = node
    return index


def find_node_for_machine(machine: Dict[str, Any], node_index: Dict[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Resolve a Machine's Node through status.nodeRef, falling back to spec.providerID."""
    node_name = ((machine.get("status") or {}).get("nodeRef") or {}).get("name")
    if node_name and f"name:{node_name}" in node_index:
        return node_index[f"name:{node_name}"]
    provider_id = (machine.get("spec") or {}).get("providerID")
    if provider_id:
        return node_index.get(f"providerID:{provider_id}")
    return None


class FleetObserver:
    """
    Aggregates control plane Machines and Node readiness into a FleetView.

    A new view is built from fresh List calls on every pass; nothing is cached.
    """

    def __init__(self, store, node_selector: Optional[Dict[str, str]] = None):
        """
        Args:
            store: Store client exposing list(resource, namespace=None, label_selector=None)
            node_selector: Labels selecting control plane Nodes
        """
        self.store = store
        self.node_selector = node_selector if node_selector is not None else dict(CONTROL_PLANE_NODE_SELECTOR)

    def _is_managed(self, machine: Dict[str, Any], spec: ControlPlaneMachineSetSpec) -> bool:
        # Orphan control plane Machines are managed too; those controlled elsewhere are not
        controller = get_controller_reference(machine)
        return controller is None or controller.get("uid") == spec.uid

    def observe(self, spec: ControlPlaneMachineSetSpec) -> FleetView:
        """
        Build the FleetView for a ControlPlaneMachineSet.

        Args:
            spec: Parsed ControlPlaneMachineSet spec (selector, namespace, template)

        Returns:
            FleetView: Observations for every managed Machine, oldest first
        """
        machines = self.store.list(MACHINE_RESOURCE, namespace=spec.namespace, label_selector=spec.selector)
        nodes = self.store.list(NODE_RESOURCE, label_selector=self.node_selector)
        node_index = build_node_index(nodes)

        observations = []
        for machine in machines:
            if not self._is_managed(machine, spec):
                continue

            metadata = get_metadata(machine)
            node = find_node_for_machine(machine, node_index)
            observations.append(
                MachineObservation(
                    name=metadata.get("name"),
                    namespace=metadata.get("namespace", spec.namespace),
                    uid=metadata.get("uid", ""),
                    phase=normalize_phase(machine),
                    drifted=not provider_spec_matches(machine, spec),
                    node_ready=get_node_ready_status(node) if node else None,
                    node_name=get_metadata(node).get("name") if node else None,
                    creation_timestamp=parse_timestamp(metadata.get("creationTimestamp")),
                    owned=is_controlled_by(machine, spec.uid),
                )
            )

        observations.sort(key=lambda m: m.sort_key)
        return FleetView(machines=observations)
