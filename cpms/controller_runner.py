#!/usr/bin/env python3
"""Controller Runner module: schedules reconcile passes with requeue and backoff."""

import threading
import time

from .configuration_manager import DEFAULT_CONFIG
from .errors import ReconcileCancelled


class ReconcileRunner:
    """
    Repeatedly invokes the reconciler for one ControlPlaneMachineSet.

    One identity per runner, so passes for that identity are serialized.
    Scheduling:
    - Done: wait requeue_after if the pass asked for it, else check_interval
    - Requeue: wait requeue_interval
    - Exception: wait with exponential backoff (x1.5) capped at max_backoff
    """

    def __init__(self, reconciler, name=None, config=None, printer=None, format_runtime=None):
        """
        Initialize the runner.

        Args:
            reconciler: ControlPlaneMachineSetReconciler instance
            name (str): Name of the ControlPlaneMachineSet to reconcile
            config (dict): Controller settings (see configuration_manager)
            printer: Printer instance for output
            format_runtime: Function to format time durations
        """
        self.reconciler = reconciler
        self.config = dict(DEFAULT_CONFIG, **(config or {}))
        self.name = name or self.config["name"]
        self.printer = printer
        self.format_runtime = format_runtime

        self.passes = 0
        self.failures = 0
        self.backoff = self.config["requeue_interval"]

    def run_once(self, cancel_event=None):
        """Run a single reconcile pass and return its outcome."""
        self.passes += 1
        return self.reconciler.reconcile(self.name, cancel_event=cancel_event)

    def next_delay(self, outcome=None, error=None):
        """
        Compute the wait before the next pass.

        Args:
            outcome: ReconcileOutcome of the last pass, if it returned
            error: Exception raised by the last pass, if it failed

        Returns:
            float: Seconds to wait
        """
        if error is not None:
            delay = self.backoff
            self.backoff = min(self.backoff * 1.5, self.config["max_backoff"])
            return delay

        self.backoff = self.config["requeue_interval"]
        if outcome.requeue:
            return outcome.requeue_after or self.config["requeue_interval"]
        if outcome.requeue_after:
            return outcome.requeue_after
        return self.config["check_interval"]

    def run(self, stop_event=None, max_passes=None):
        """
        Run reconcile passes until stopped.

        Args:
            stop_event: threading.Event that stops the loop and cancels an in-flight pass
            max_passes: Optional limit on the number of passes

        Returns:
            int: Number of passes executed
        """
        stop_event = stop_event or threading.Event()
        start_time = time.time()
        if self.printer:
            self.printer.print_info(f"Starting reconcile loop for control plane machine set {self.name}")

        while not stop_event.is_set() and (max_passes is None or self.passes < max_passes):
            try:
                outcome = self.run_once(cancel_event=stop_event)
            except ReconcileCancelled:
                break
            except Exception as e:
                self.failures += 1
                delay = self.next_delay(error=e)
                if self.printer:
                    self.printer.print_error(f"Reconcile of {self.name} failed: {e}")
                    self.printer.print_warning(f"Retrying in {delay:.0f}s...")
            else:
                delay = self.next_delay(outcome=outcome)
                if self.printer:
                    self.printer.print_action(f"Reconcile {outcome.result}, next pass in {delay:.0f}s")

            if max_passes is not None and self.passes >= max_passes:
                break
            stop_event.wait(delay)

        if self.printer:
            runtime = self.format_runtime(start_time, time.time()) if self.format_runtime else None
            summary = f"Stopped after {self.passes} passes ({self.failures} failed)"
            self.printer.print_info(f"{summary}, runtime: {runtime}" if runtime else summary)
        return self.passes
