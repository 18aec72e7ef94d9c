#!/usr/bin/env python3
"""
Pytest tests for the store_client module.
Covers oc command bindings, cancellation and the machine provisioner.
"""

import os
import sys
import threading
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cpms.errors import NotFoundError, ReconcileCancelled  # noqa: E402
from cpms.resources import (  # noqa: E402
    CPMS_RESOURCE,
    MACHINE_RESOURCE,
    MachineRef,
    build_machine_from_template,
    parse_control_plane_machine_set,
)
from cpms.store_client import CancellableStoreClient, MachineProvisioner, OcStoreClient  # noqa: E402


@pytest.fixture
def mock_execute_oc() -> Mock:
    """Mock oc executor returning an empty object."""
    return Mock(return_value={})


class TestOcStoreClient:
    """Test cases for the oc command lines issued by the store client."""

    def test_get(self, mock_execute_oc, mock_printer) -> None:
        client = OcStoreClient(execute_oc_command=mock_execute_oc, printer=mock_printer)

        client.get(CPMS_RESOURCE, "cluster", "openshift-machine-api")

        mock_execute_oc.assert_called_once_with(
            ["get", CPMS_RESOURCE, "cluster", "-n", "openshift-machine-api", "-o", "json"],
            json_output=True,
            printer=mock_printer,
            max_retries=3,
        )

    def test_get_cluster_scoped(self, mock_execute_oc) -> None:
        OcStoreClient(execute_oc_command=mock_execute_oc).get("nodes", "master-0")

        assert mock_execute_oc.call_args.args[0] == ["get", "nodes", "master-0", "-o", "json"]

    def test_list_with_selector(self, mock_execute_oc) -> None:
        mock_execute_oc.return_value = {"items": [{"metadata": {"name": "m0"}}]}
        client = OcStoreClient(execute_oc_command=mock_execute_oc, max_read_retries=5)

        items = client.list(MACHINE_RESOURCE, namespace="ns", label_selector={"role": "master", "a": "b"})

        assert items == [{"metadata": {"name": "m0"}}]
        assert mock_execute_oc.call_args.args[0] == [
            "get",
            MACHINE_RESOURCE,
            "-n",
            "ns",
            "-l",
            "a=b,role=master",
            "-o",
            "json",
        ]
        assert mock_execute_oc.call_args.kwargs["max_retries"] == 5

    def test_list_without_items(self, mock_execute_oc) -> None:
        mock_execute_oc.return_value = None
        assert OcStoreClient(execute_oc_command=mock_execute_oc).list("nodes") == []

    def test_update_is_single_attempt(self, mock_execute_oc) -> None:
        """Test that writes are never retried so a conflict reaches the caller."""
        obj = {"kind": "ControlPlaneMachineSet", "metadata": {"name": "cluster", "resourceVersion": "7"}}

        OcStoreClient(execute_oc_command=mock_execute_oc).update(obj)

        mock_execute_oc.assert_called_once_with(
            ["replace", "-f", "-", "-o", "json"], json_output=True, input_data=obj, printer=None, max_retries=0
        )

    def test_update_status_subresource(self, mock_execute_oc) -> None:
        OcStoreClient(execute_oc_command=mock_execute_oc).update({"metadata": {}}, subresource="status")

        assert mock_execute_oc.call_args.args[0] == ["replace", "-f", "-", "-o", "json", "--subresource=status"]

    def test_create(self, mock_execute_oc) -> None:
        obj = {"kind": "Machine", "metadata": {"generateName": "test-cluster-master-"}}

        OcStoreClient(execute_oc_command=mock_execute_oc).create(obj)

        assert mock_execute_oc.call_args.args[0] == ["create", "-f", "-", "-o", "json"]
        assert mock_execute_oc.call_args.kwargs["input_data"] is obj
        assert mock_execute_oc.call_args.kwargs["max_retries"] == 0

    def test_delete_does_not_wait(self, mock_execute_oc) -> None:
        OcStoreClient(execute_oc_command=mock_execute_oc).delete(MACHINE_RESOURCE, "m0", "ns")

        assert mock_execute_oc.call_args.args[0] == ["delete", MACHINE_RESOURCE, "m0", "-n", "ns", "--wait=false"]


class TestCancellableStoreClient:
    """Test cases for cancellation checks before store calls."""

    @pytest.mark.parametrize(
        "operation,args",
        [
            ("get", ("nodes", "master-0")),
            ("list", ("nodes",)),
            ("update", ({"metadata": {}},)),
            ("create", ({"metadata": {}},)),
            ("delete", ("nodes", "master-0")),
        ],
    )
    def test_cancelled_before_call(self, operation, args) -> None:
        inner = Mock()
        event = threading.Event()
        event.set()
        client = CancellableStoreClient(inner, event)

        with pytest.raises(ReconcileCancelled, match=operation):
            getattr(client, operation)(*args)

        assert getattr(inner, operation).call_count == 0

    def test_passes_through_when_not_cancelled(self) -> None:
        inner = Mock()
        inner.list.return_value = ["item"]
        client = CancellableStoreClient(inner, threading.Event())

        assert client.list("nodes", label_selector={"a": "b"}) == ["item"]
        inner.list.assert_called_once_with("nodes", label_selector={"a": "b"})

    def test_no_event(self) -> None:
        inner = Mock()
        CancellableStoreClient(inner).update({"metadata": {}}, subresource="status")
        inner.update.assert_called_once_with({"metadata": {}}, subresource="status")


class TestMachineProvisioner:
    """Test cases for the provisioning backend."""

    def test_create_machine_returns_assigned_name(self, fake_store, cpms_factory) -> None:
        template = build_machine_from_template(parse_control_plane_machine_set(cpms_factory()))

        ref = MachineProvisioner(fake_store).create_machine(template)

        assert ref.name.startswith("test-cluster-master-")
        assert ref.namespace == "openshift-machine-api"
        assert ref.uid == f"uid-{ref.name}"
        assert fake_store.current(MACHINE_RESOURCE, ref.name) is not None

    def test_delete_machine(self, fake_store, machine_factory) -> None:
        fake_store.add(machine_factory(name="m0"))

        deleted = MachineProvisioner(fake_store).delete_machine(MachineRef("m0", "openshift-machine-api"))

        assert deleted is True
        assert fake_store.current(MACHINE_RESOURCE, "m0") is None

    def test_delete_missing_machine(self) -> None:
        store = Mock()
        store.delete.side_effect = NotFoundError("not found")

        assert MachineProvisioner(store).delete_machine(MachineRef("m0", "ns")) is False
