#!/usr/bin/env python3
"""Store Client module: resource store and provisioning backend bindings over the oc CLI."""

from typing import Any, Callable, Dict, List, Optional

from .errors import NotFoundError, ReconcileCancelled
from .resources import MACHINE_RESOURCE, MachineRef, get_metadata, get_name
from .utilities import execute_oc_command as default_execute_oc_command
from .utilities import format_label_selector


class OcStoreClient:
    """
    Resource store client backed by the OpenShift CLI.

    Reads retry transient API failures. Writes are attempted exactly once so that
    a resourceVersion conflict reaches the caller unchanged.
    """

    def __init__(
        self,
        execute_oc_command: Optional[Callable[..., Any]] = None,
        printer: Optional[Any] = None,
        max_read_retries: int = 3,
    ) -> None:
        """
        Initialize the store client.

        Args:
            execute_oc_command: Function to execute OpenShift CLI commands
            printer: PrintManager instance for command tracing
            max_read_retries: Retry attempts for get/list on retryable errors
        """
        self.execute_oc_command = execute_oc_command or default_execute_oc_command
        self.printer = printer
        self.max_read_retries = max_read_retries

    def get(self, resource: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        command = ["get", resource, name, "-o", "json"]
        if namespace:
            command[3:3] = ["-n", namespace]
        return self.execute_oc_command(
            command, json_output=True, printer=self.printer, max_retries=self.max_read_retries
        )

    def list(
        self,
        resource: str,
        namespace: Optional[str] = None,
        label_selector: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        command = ["get", resource]
        if namespace:
            command += ["-n", namespace]
        if label_selector:
            command += ["-l", format_label_selector(label_selector)]
        command += ["-o", "json"]
        data = self.execute_oc_command(
            command, json_output=True, printer=self.printer, max_retries=self.max_read_retries
        )
        return (data or {}).get("items", [])

    def update(self, obj: Dict[str, Any], subresource: Optional[str] = None) -> Dict[str, Any]:
        """
        Replace an object, carrying its metadata.resourceVersion for conflict detection.

        Args:
            obj: Full object including metadata.resourceVersion
            subresource: Optional subresource to write (e.g. "status")

        Returns:
            dict: The stored object with its new resourceVersion

        Raises:
            ConflictError: The supplied resourceVersion is stale
        """
        command = ["replace", "-f", "-", "-o", "json"]
        if subresource:
            command.append(f"--subresource={subresource}")
        return self.execute_oc_command(
            command, json_output=True, input_data=obj, printer=self.printer, max_retries=0
        )

    def create(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.execute_oc_command(
            ["create", "-f", "-", "-o", "json"], json_output=True, input_data=obj, printer=self.printer, max_retries=0
        )

    def delete(self, resource: str, name: str, namespace: Optional[str] = None) -> None:
        command = ["delete", resource, name, "--wait=false"]
        if namespace:
            command[3:3] = ["-n", namespace]
        self.execute_oc_command(command, printer=self.printer, max_retries=0)


class CancellableStoreClient:
    """Store client wrapper that checks a cancellation signal before every store call."""

    def __init__(self, store, cancel_event=None):
        self.store = store
        self.cancel_event = cancel_event

    def _check_cancelled(self, operation):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReconcileCancelled(f"Reconcile cancelled before store {operation}")

    def get(self, *args, **kwargs):
        self._check_cancelled("get")
        return self.store.get(*args, **kwargs)

    def list(self, *args, **kwargs):
        self._check_cancelled("list")
        return self.store.list(*args, **kwargs)

    def update(self, *args, **kwargs):
        self._check_cancelled("update")
        return self.store.update(*args, **kwargs)

    def create(self, *args, **kwargs):
        self._check_cancelled("create")
        return self.store.create(*args, **kwargs)

    def delete(self, *args, **kwargs):
        self._check_cancelled("delete")
        return self.store.delete(*args, **kwargs)


class MachineProvisioner:
    """
    Provisioning backend for control plane Machines.

    Creating or deleting a Machine object hands the work to the machine API
    actuator. Both calls return as soon as the request is accepted; completion
    is observed later through the Machine's status.phase.
    """

    def __init__(self, store):
        self.store = store

    def create_machine(self, template: Dict[str, Any]) -> MachineRef:
        """
        Create a Machine from a rendered template.

        Args:
            template: Machine object as produced by build_machine_from_template

        Returns:
            MachineRef: Reference to the created Machine (name assigned by the API server)
        """
        created = self.store.create(template)
        metadata = get_metadata(created)
        return MachineRef(
            name=get_name(created),
            namespace=metadata.get("namespace", get_metadata(template).get("namespace", "")),
            uid=metadata.get("uid", ""),
        )

    def delete_machine(self, machine_ref: MachineRef) -> bool:
        """
        Request deletion of a Machine.

        Returns:
            bool: True if a deletion was requested, False if the Machine was already gone
        """
        try:
            self.store.delete(MACHINE_RESOURCE, machine_ref.name, machine_ref.namespace)
        except NotFoundError:
            return False
        return True
