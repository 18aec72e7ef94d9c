#!/usr/bin/env python3
"""Utilities module for the Control Plane Machine Set controller."""

import json
import subprocess
import time
from datetime import datetime, timezone
from typing import Optional

from .errors import ConflictError, NotFoundError, StoreError, TransientBackendError

CONFLICT_PATTERNS = [
    "(conflict)",
    "the object has been modified",
    "please apply your changes to the latest version",
]

NOT_FOUND_PATTERNS = [
    "(notfound)",
]


def _is_retryable_error(stderr_text):
    """Check if the error is worth retrying."""
    if not stderr_text:
        return False

    # Common API server connectivity issues that warrant retry
    retryable_patterns = [
        "keepalive ping failed",
        "connection refused",
        "timeout",
        "connection reset",
        "temporary failure in name resolution",
        "service unavailable",
        "internal server error",
        "too many requests",
        "server is currently unable to handle the request",
        "context deadline exceeded",
    ]

    stderr_lower = stderr_text.lower()
    return any(pattern in stderr_lower for pattern in retryable_patterns)


def classify_oc_error(stderr_text, command_description):
    """
    Map oc stderr output to the controller's error taxonomy.

    Conflicts are checked before retryable patterns: a conflict is never retried
    by the CLI wrapper, it is surfaced so the reconcile pass can re-observe.

    Args:
        stderr_text: stderr captured from the oc invocation
        command_description: Human-readable command for the error message

    Returns:
        StoreError or TransientBackendError: The exception to raise
    """
    stderr = (stderr_text or "").strip()
    stderr_lower = stderr.lower()

    if any(pattern in stderr_lower for pattern in CONFLICT_PATTERNS):
        return ConflictError(f"Conflict running '{command_description}': {stderr}", stderr=stderr)
    if any(pattern in stderr_lower for pattern in NOT_FOUND_PATTERNS):
        return NotFoundError(f"Not found running '{command_description}': {stderr}", stderr=stderr)
    if _is_retryable_error(stderr):
        return TransientBackendError(f"API server unavailable running '{command_description}': {stderr}")
    return StoreError(f"Command '{command_description}' failed: {stderr}", stderr=stderr)


def _log_retry_attempt(printer, attempt, max_retries, exec_command):
    """Log retry attempt information."""
    if not printer:
        return
    if attempt == 0:
        printer.print_action(f"Executing oc command: {' '.join(exec_command)}")
    else:
        printer.print_info(f"Retry attempt {attempt}/{max_retries}: {' '.join(exec_command)}")


def execute_oc_command(
    command,
    json_output=False,
    input_data=None,
    printer=None,
    max_retries=3,
    retry_delay=2,
):
    """
    Execute an OpenShift CLI command with retry logic for API failures.

    Only retryable connectivity errors are retried. Conflicts, missing resources
    and other failures raise immediately. Callers that must issue exactly one
    request (writes) pass max_retries=0.

    Args:
        command: List of command arguments to execute (excluding 'oc')
        json_output: If True, parse stdout as JSON
        input_data: Optional dict (sent as JSON) or string written to stdin
        printer: Printer instance for output
        max_retries: Maximum number of retry attempts (default: 3)
        retry_delay: Seconds to wait between retries (default: 2)

    Returns:
        str or dict: Command output as string, or parsed JSON dict if json_output=True

    Raises:
        ConflictError: The API server rejected a stale resourceVersion
        NotFoundError: The resource does not exist
        TransientBackendError: Retryable failures persisted after all retries
        StoreError: Any other command failure
    """
    exec_command = ["oc"] + command
    command_description = " ".join(exec_command)
    stdin_text = json.dumps(input_data) if isinstance(input_data, dict) else input_data

    for attempt in range(max_retries + 1):  # +1 for the initial attempt
        _log_retry_attempt(printer, attempt, max_retries, exec_command)
        try:
            result = subprocess.run(exec_command, input=stdin_text, capture_output=True, text=True, timeout=60)
        except subprocess.TimeoutExpired:
            error = TransientBackendError(f"Command '{command_description}' timed out after 60 seconds")
        except OSError as e:
            raise StoreError(f"Unable to execute '{command_description}': {e}") from e
        else:
            if result.returncode == 0:
                if attempt > 0 and printer:
                    printer.print_success(f"Command succeeded on retry attempt {attempt}")
                if not json_output:
                    return result.stdout.strip()
                try:
                    return json.loads(result.stdout)
                except json.JSONDecodeError as e:
                    raise StoreError(f"Failed to parse JSON output of '{command_description}': {e}") from e
            error = classify_oc_error(result.stderr, command_description)

        if not isinstance(error, TransientBackendError) or attempt >= max_retries:
            raise error

        if printer:
            printer.print_warning(f"Command failed with retryable error, waiting {retry_delay}s before retry...")
            printer.print_info(f"Error: {error}")
        time.sleep(retry_delay)
        retry_delay *= 1.5  # Exponential backoff with factor of 1.5

    # Only reachable with a negative max_retries
    raise StoreError(f"Command '{command_description}' was not attempted")


def format_runtime(start_time, end_time):
    """
    Format runtime duration in a human-readable way.

    Args:
        start_time (float): Start timestamp from time.time()
        end_time (float): End timestamp from time.time()

    Returns:
        str: Formatted runtime string (e.g., "5m 23s", "1h 15m 30s")
    """
    total_seconds = int(end_time - start_time)

    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    elif minutes > 0:
        return f"{minutes}m {seconds}s"
    else:
        return f"{seconds}s"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Kubernetes RFC3339 timestamp (e.g. "2023-01-01T00:00:00Z").

    Returns:
        datetime or None: Timezone-aware datetime, or None if unset or unparseable
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a Kubernetes RFC3339 timestamp with second precision."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_node_ready_status(node) -> Optional[bool]:
    """
    Read the Ready condition of a Node.

    Args:
        node: Node object dict

    Returns:
        bool or None: True if Ready, False if NotReady, None if the condition is Unknown or missing
    """
    for condition in node.get("status", {}).get("conditions", []):
        if condition.get("type") == "Ready":
            if condition.get("status") == "True":
                return True
            if condition.get("status") == "False":
                return False
            return None
    return None


def format_label_selector(match_labels) -> str:
    """Render a matchLabels mapping as an oc label selector string (sorted for stable commands)."""
    return ",".join(f"{key}={value}" for key, value in sorted(match_labels.items()))


