#!/usr/bin/env python3
"""
Resource model for ControlPlaneMachineSet, Machine and Node objects.

Store objects are handled as the plain dicts returned by ``oc get -o json``.
This module parses the ControlPlaneMachineSet spec into an immutable value,
provides metadata helpers, and renders Machines from the machine template.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import FatalConfigurationError

CPMS_API_VERSION = "machine.openshift.io/v1"
CPMS_KIND = "ControlPlaneMachineSet"
CPMS_RESOURCE = "controlplanemachinesets.machine.openshift.io"

MACHINE_API_VERSION = "machine.openshift.io/v1beta1"
MACHINE_KIND = "Machine"
MACHINE_RESOURCE = "machines.machine.openshift.io"

NODE_RESOURCE = "nodes"
CONTROL_PLANE_NODE_SELECTOR = {"node-role.kubernetes.io/control-plane": ""}

CONTROL_PLANE_MACHINE_SET_FINALIZER = "controlplanemachineset.machine.openshift.io"
MACHINE_TYPE_V1BETA1 = "machines_v1beta1_machine_openshift_io"
CLUSTER_ID_LABEL = "machine.openshift.io/cluster-api-cluster"

STRATEGY_ROLLING_UPDATE = "RollingUpdate"
STRATEGY_ON_DELETE = "OnDelete"
SUPPORTED_STRATEGIES = (STRATEGY_ROLLING_UPDATE, STRATEGY_ON_DELETE)

STATE_ACTIVE = "Active"
STATE_INACTIVE = "Inactive"

# Machine phases
PHASE_PROVISIONING = "Provisioning"
PHASE_PROVISIONED = "Provisioned"
PHASE_RUNNING = "Running"
PHASE_DELETING = "Deleting"
PHASE_FAILED = "Failed"


@dataclass(frozen=True)
class ControlPlaneMachineSetSpec:
    """Desired state of the control plane, parsed from a ControlPlaneMachineSet object."""

    name: str
    namespace: str
    uid: str
    generation: int
    replicas: int
    strategy: str
    state: str
    selector: Dict[str, str] = field(default_factory=dict)
    template_labels: Dict[str, str] = field(default_factory=dict)
    provider_spec: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.state == STATE_ACTIVE


def get_metadata(obj) -> Dict[str, Any]:
    return obj.get("metadata", {})


def get_name(obj) -> Optional[str]:
    return get_metadata(obj).get("name")


def get_resource_version(obj) -> Optional[str]:
    return get_metadata(obj).get("resourceVersion")


def get_finalizers(obj) -> List[str]:
    return list(get_metadata(obj).get("finalizers") or [])


def is_being_deleted(obj) -> bool:
    """True when the object carries a deletionTimestamp."""
    return bool(get_metadata(obj).get("deletionTimestamp"))


def get_controller_reference(obj) -> Optional[Dict[str, Any]]:
    """Return the owner reference marked as controller, if any."""
    for owner in get_metadata(obj).get("ownerReferences") or []:
        if owner.get("controller"):
            return owner
    return None


def is_controlled_by(obj, owner_uid) -> bool:
    controller = get_controller_reference(obj)
    return bool(controller) and controller.get("uid") == owner_uid


def _require(condition, message):
    if not condition:
        raise FatalConfigurationError(message)


def parse_control_plane_machine_set(cpms) -> ControlPlaneMachineSetSpec:
    """
    Parse and validate a ControlPlaneMachineSet object.

    Args:
        cpms: ControlPlaneMachineSet object dict as returned by the store

    Returns:
        ControlPlaneMachineSetSpec: The validated desired state

    Raises:
        FatalConfigurationError: If the spec is malformed
    """
    metadata = get_metadata(cpms)
    spec = cpms.get("spec")
    name = metadata.get("name", "<unknown>")
    _require(isinstance(spec, dict), f"ControlPlaneMachineSet {name} has no spec")

    replicas = spec.get("replicas")
    _require(
        isinstance(replicas, int) and not isinstance(replicas, bool) and replicas > 0,
        f"spec.replicas must be a positive integer, got {replicas!r}",
    )

    strategy = (spec.get("strategy") or {}).get("type") or STRATEGY_ROLLING_UPDATE
    _require(
        strategy in SUPPORTED_STRATEGIES,
        f"spec.strategy.type {strategy!r} is not supported, expected one of {', '.join(SUPPORTED_STRATEGIES)}",
    )

    state = spec.get("state") or STATE_ACTIVE
    _require(
        state in (STATE_ACTIVE, STATE_INACTIVE),
        f"spec.state {state!r} is not supported, expected {STATE_ACTIVE} or {STATE_INACTIVE}",
    )

    selector = (spec.get("selector") or {}).get("matchLabels")
    _require(isinstance(selector, dict) and selector, "spec.selector.matchLabels must be a non-empty mapping")

    template = spec.get("template") or {}
    machine_type = template.get("machineType")
    _require(
        machine_type == MACHINE_TYPE_V1BETA1,
        f"spec.template.machineType {machine_type!r} is not supported, expected {MACHINE_TYPE_V1BETA1}",
    )
    machine_template = template.get(MACHINE_TYPE_V1BETA1) or {}
    template_labels = (machine_template.get("metadata") or {}).get("labels") or {}
    provider_spec = (machine_template.get("spec") or {}).get("providerSpec")
    _require(
        isinstance(provider_spec, dict) and provider_spec.get("value") is not None,
        f"spec.template.{MACHINE_TYPE_V1BETA1}.spec.providerSpec.value is required",
    )

    missing = {key: value for key, value in selector.items() if template_labels.get(key) != value}
    _require(
        not missing,
        f"machine template labels must match spec.selector.matchLabels, missing {sorted(missing)}",
    )

    return ControlPlaneMachineSetSpec(
        name=name,
        namespace=metadata.get("namespace", ""),
        uid=metadata.get("uid", ""),
        generation=int(metadata.get("generation") or 0),
        replicas=replicas,
        strategy=strategy,
        state=state,
        selector=dict(selector),
        template_labels=dict(template_labels),
        provider_spec=copy.deepcopy(provider_spec),
    )


def provider_spec_matches(machine, spec: ControlPlaneMachineSetSpec) -> bool:
    """Compare a Machine's providerSpec value against the desired template's."""
    machine_provider_spec = (machine.get("spec") or {}).get("providerSpec") or {}
    return machine_provider_spec.get("value") == spec.provider_spec.get("value")


def build_machine_from_template(spec: ControlPlaneMachineSetSpec) -> Dict[str, Any]:
    """
    Render a new Machine object from the ControlPlaneMachineSet template.

    The name is left to the API server via generateName, prefixed with the
    cluster ID label when present (e.g. "mycluster-master-").

    Args:
        spec: Parsed ControlPlaneMachineSet spec

    Returns:
        dict: Machine object ready to be created
    """
    cluster_id = spec.template_labels.get(CLUSTER_ID_LABEL)
    generate_name = f"{cluster_id}-master-" if cluster_id else f"{spec.name}-"

    return {
        "apiVersion": MACHINE_API_VERSION,
        "kind": MACHINE_KIND,
        "metadata": {
            "generateName": generate_name,
            "namespace": spec.namespace,
            "labels": dict(spec.template_labels),
            "ownerReferences": [
                {
                    "apiVersion": CPMS_API_VERSION,
                    "kind": CPMS_KIND,
                    "name": spec.name,
                    "uid": spec.uid,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ],
        },
        "spec": {"providerSpec": copy.deepcopy(spec.provider_spec)},
    }


@dataclass(frozen=True)
class MachineRef:
    """Identity of a Machine: lookup key for the store and the provisioning backend."""

    name: str
    namespace: str
    uid: str = ""

    def __str__(self):
        return f"{self.namespace}/{self.name}"
