#!/usr/bin/env python3
"""
Shared pytest configuration and fixtures for all tests.
"""

import copy
import itertools
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

# Add the parent directory to Python path so we can import modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cpms.errors import ConflictError, NotFoundError, StoreError  # noqa: E402
from cpms.fleet_observer import FleetView, MachineObservation  # noqa: E402
from cpms.resources import (  # noqa: E402
    CLUSTER_ID_LABEL,
    CPMS_RESOURCE,
    MACHINE_RESOURCE,
    MACHINE_TYPE_V1BETA1,
    NODE_RESOURCE,
)

NAMESPACE = "openshift-machine-api"
CPMS_UID = "cpms-uid-0001"

SELECTOR_LABELS = {
    "machine.openshift.io/cluster-api-machine-role": "master",
    "machine.openshift.io/cluster-api-machine-type": "master",
}
TEMPLATE_LABELS = dict(SELECTOR_LABELS, **{CLUSTER_ID_LABEL: "test-cluster"})

CURRENT_PROVIDER_VALUE = {
    "apiVersion": "machine.openshift.io/v1beta1",
    "kind": "AWSMachineProviderConfig",
    "instanceType": "m6i.xlarge",
    "ami": {"id": "ami-0123456789abcdef0"},
    "placement": {"region": "us-east-1"},
}
OUTDATED_PROVIDER_VALUE = dict(CURRENT_PROVIDER_VALUE, instanceType="m5.xlarge")

KIND_TO_RESOURCE = {
    "ControlPlaneMachineSet": CPMS_RESOURCE,
    "Machine": MACHINE_RESOURCE,
    "Node": NODE_RESOURCE,
}


class FakeStore:
    """In-memory resource store with API server semantics for resourceVersion and finalizers.

    - update() fails with ConflictError when the supplied resourceVersion is stale
    - update() of the main resource keeps the stored status; subresource="status" only writes status
    - delete() of an object holding finalizers only sets deletionTimestamp
    - removing the last finalizer from an object being deleted removes it
    """

    def __init__(self):
        self.objects: Dict[tuple, Dict[str, Any]] = {}
        self._versions = itertools.count(100)
        self._names = itertools.count(1)
        self.updates: List[Dict[str, Any]] = []
        self.creates: List[Dict[str, Any]] = []
        self.deletes: List[tuple] = []
        self.calls: List[str] = []

    @staticmethod
    def _key(resource, namespace, name):
        return (resource, namespace or "", name)

    def _key_for(self, obj):
        metadata = obj["metadata"]
        return self._key(KIND_TO_RESOURCE[obj["kind"]], metadata.get("namespace"), metadata["name"])

    def _next_version(self):
        return str(next(self._versions))

    @property
    def write_count(self):
        return len(self.updates) + len(self.creates) + len(self.deletes)

    def add(self, obj):
        """Seed an object directly, bypassing write tracking."""
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault("metadata", {})
        metadata.setdefault("uid", f"uid-{metadata['name']}")
        metadata["resourceVersion"] = self._next_version()
        self.objects[self._key_for(stored)] = stored
        return copy.deepcopy(stored)

    def current(self, resource, name, namespace=NAMESPACE):
        """Return the stored object without recording a call."""
        return copy.deepcopy(self.objects.get(self._key(resource, namespace, name)))

    def get(self, resource, name, namespace=None):
        self.calls.append("get")
        key = self._key(resource, namespace, name)
        if key not in self.objects:
            raise NotFoundError(f'{resource} "{name}" not found')
        return copy.deepcopy(self.objects[key])

    def list(self, resource, namespace=None, label_selector=None):
        self.calls.append("list")
        items = []
        for (obj_resource, obj_namespace, _), obj in sorted(self.objects.items()):
            if obj_resource != resource:
                continue
            if namespace and obj_namespace != namespace:
                continue
            labels = obj["metadata"].get("labels") or {}
            if label_selector and any(labels.get(k) != v for k, v in label_selector.items()):
                continue
            items.append(copy.deepcopy(obj))
        return items

    def update(self, obj, subresource=None):
        self.calls.append("update")
        key = self._key_for(obj)
        if key not in self.objects:
            raise NotFoundError(f'{obj["kind"]} "{obj["metadata"]["name"]}" not found')

        stored = self.objects[key]
        if obj["metadata"].get("resourceVersion") != stored["metadata"]["resourceVersion"]:
            raise ConflictError(
                f'Operation cannot be fulfilled on {key[0]} "{key[2]}": the object has been modified; '
                "please apply your changes to the latest version and try again"
            )

        if subresource == "status":
            new = copy.deepcopy(stored)
            new["status"] = copy.deepcopy(obj.get("status"))
        else:
            new = copy.deepcopy(obj)
            if "status" in stored:
                new["status"] = copy.deepcopy(stored["status"])
            else:
                new.pop("status", None)
            if new.get("spec") != stored.get("spec"):
                new["metadata"]["generation"] = int(stored["metadata"].get("generation") or 0) + 1

        new["metadata"]["resourceVersion"] = self._next_version()
        self.updates.append(copy.deepcopy(new))

        if new["metadata"].get("deletionTimestamp") and not new["metadata"].get("finalizers"):
            del self.objects[key]
        else:
            self.objects[key] = new
        return copy.deepcopy(new)

    def create(self, obj):
        self.calls.append("create")
        new = copy.deepcopy(obj)
        metadata = new["metadata"]
        if not metadata.get("name"):
            metadata["name"] = f"{metadata.pop('generateName', 'obj-')}{next(self._names):05d}"
        key = self._key_for(new)
        if key in self.objects:
            raise StoreError(f'{key[0]} "{key[2]}" already exists')
        metadata["uid"] = f"uid-{metadata['name']}"
        metadata["resourceVersion"] = self._next_version()
        metadata["generation"] = 1
        metadata["creationTimestamp"] = "2024-06-01T00:00:00Z"
        self.objects[key] = new
        self.creates.append(copy.deepcopy(new))
        return copy.deepcopy(new)

    def delete(self, resource, name, namespace=None):
        self.calls.append("delete")
        key = self._key(resource, namespace, name)
        if key not in self.objects:
            raise NotFoundError(f'{resource} "{name}" not found')
        self.deletes.append(key)
        stored = self.objects[key]
        if stored["metadata"].get("finalizers"):
            stored["metadata"]["deletionTimestamp"] = "2024-06-01T00:00:00Z"
            stored["metadata"]["resourceVersion"] = self._next_version()
        else:
            del self.objects[key]


@pytest.fixture
def fake_store() -> FakeStore:
    """In-memory store that enforces resourceVersion compare-and-swap."""
    return FakeStore()


@pytest.fixture
def mock_printer() -> Mock:
    """Shared mock printer for all test files.

    Returns:
        Mock: Mock printer instance with all required methods for testing
            output functionality without actual printing to console.
    """
    return Mock()


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed moment for deterministic condition timestamps."""
    return lambda: datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def cpms_factory():
    """Factory for creating ControlPlaneMachineSet resources.

    Returns:
        Callable that creates customized ControlPlaneMachineSet resources with options for:
        - Replica count, strategy and state
        - Finalizers and deletion state
        - Provider spec of the machine template
    """

    def _create_cpms(
        name: str = "cluster",
        namespace: str = NAMESPACE,
        replicas: Any = 3,
        strategy: Optional[str] = "RollingUpdate",
        state: Optional[str] = "Active",
        finalizers: Optional[List[str]] = None,
        provider_value: Optional[Dict[str, Any]] = None,
        deleting: bool = False,
        uid: str = CPMS_UID,
        generation: int = 1,
    ) -> Dict[str, Any]:
        cpms = {
            "apiVersion": "machine.openshift.io/v1",
            "kind": "ControlPlaneMachineSet",
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": uid,
                "generation": generation,
            },
            "spec": {
                "replicas": replicas,
                "state": state,
                "strategy": {"type": strategy},
                "selector": {"matchLabels": dict(SELECTOR_LABELS)},
                "template": {
                    "machineType": MACHINE_TYPE_V1BETA1,
                    MACHINE_TYPE_V1BETA1: {
                        "metadata": {"labels": dict(TEMPLATE_LABELS)},
                        "spec": {
                            "providerSpec": {"value": copy.deepcopy(provider_value or CURRENT_PROVIDER_VALUE)}
                        },
                    },
                },
            },
        }
        if finalizers is not None:
            cpms["metadata"]["finalizers"] = list(finalizers)
        if deleting:
            cpms["metadata"]["deletionTimestamp"] = "2024-06-01T00:00:00Z"
        return cpms

    return _create_cpms


@pytest.fixture
def machine_factory():
    """Factory for creating control plane Machine resources.

    Returns:
        Callable that creates customized Machine resources with options for:
        - Phase and deletion state
        - Provider spec (current or outdated)
        - Creation timestamp for ordering
        - Owner reference and Node reference
    """

    def _create_machine(
        name: str = "test-cluster-master-0",
        phase: Optional[str] = "Running",
        provider_value: Optional[Dict[str, Any]] = None,
        created: str = "2024-01-01T00:00:00Z",
        owner_uid: Optional[str] = CPMS_UID,
        node_name: Optional[str] = "",
        deleting: bool = False,
        labels: Optional[Dict[str, str]] = None,
        provider_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        machine = {
            "apiVersion": "machine.openshift.io/v1beta1",
            "kind": "Machine",
            "metadata": {
                "name": name,
                "namespace": NAMESPACE,
                "uid": f"uid-{name}",
                "creationTimestamp": created,
                "labels": dict(TEMPLATE_LABELS if labels is None else labels),
            },
            "spec": {"providerSpec": {"value": copy.deepcopy(provider_value or CURRENT_PROVIDER_VALUE)}},
            "status": {},
        }
        if owner_uid:
            machine["metadata"]["ownerReferences"] = [
                {
                    "apiVersion": "machine.openshift.io/v1",
                    "kind": "ControlPlaneMachineSet",
                    "name": "cluster",
                    "uid": owner_uid,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ]
        if phase:
            machine["status"]["phase"] = phase
        # Default: node named after the machine
        resolved_node = name if node_name == "" else node_name
        if resolved_node:
            machine["status"]["nodeRef"] = {"kind": "Node", "name": resolved_node}
        if provider_id:
            machine["spec"]["providerID"] = provider_id
        if deleting:
            machine["metadata"]["deletionTimestamp"] = "2024-06-01T00:00:00Z"
            machine["metadata"]["finalizers"] = ["machine.machine.openshift.io"]
        return machine

    return _create_machine


@pytest.fixture
def node_factory():
    """Factory for creating control plane Node resources with a Ready condition."""

    def _create_node(name: str, ready: Optional[bool] = True, provider_id: Optional[str] = None) -> Dict[str, Any]:
        node = {
            "apiVersion": "v1",
            "kind": "Node",
            "metadata": {
                "name": name,
                "labels": {"node-role.kubernetes.io/control-plane": "", "node-role.kubernetes.io/master": ""},
            },
            "spec": {},
            "status": {"conditions": []},
        }
        if provider_id:
            node["spec"]["providerID"] = provider_id
        if ready is not None:
            node["status"]["conditions"].append({"type": "Ready", "status": "True" if ready else "False"})
        else:
            node["status"]["conditions"].append({"type": "Ready", "status": "Unknown"})
        return node

    return _create_node


@pytest.fixture
def healthy_cluster(fake_store, cpms_factory, machine_factory, node_factory):
    """Store seeded with a finalized CPMS and three Ready, up to date control plane machines."""
    fake_store.add(cpms_factory(finalizers=["controlplanemachineset.machine.openshift.io"]))
    for index in range(3):
        name = f"test-cluster-master-{index}"
        fake_store.add(machine_factory(name=name, created=f"2024-01-0{index + 1}T00:00:00Z"))
        fake_store.add(node_factory(name))
    return fake_store


# (phase, drifted, node_ready) shorthands for building FleetViews directly
HEALTHY = ("Running", False, True)
DRIFTED = ("Running", True, True)
DRIFTED_NOT_READY = ("Running", True, False)
NOT_READY = ("Running", False, False)
FAILED = ("Failed", False, None)
PROVISIONING = ("Provisioning", False, None)
DELETING = ("Deleting", True, True)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_fleet(*states):
    """Build a FleetView with one machine per state, created one hour apart."""
    machines = []
    for index, (phase, drifted, node_ready) in enumerate(states):
        machines.append(
            MachineObservation(
                name=f"master-{index}",
                namespace=NAMESPACE,
                uid=f"uid-master-{index}",
                phase=phase,
                drifted=drifted,
                node_ready=node_ready,
                creation_timestamp=BASE_TIME + timedelta(hours=index),
            )
        )
    return FleetView(machines=machines)
