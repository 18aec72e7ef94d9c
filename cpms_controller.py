#!/usr/bin/env python3
"""
Control Plane Machine Set Controller

This is the main entry point for the Control Plane Machine Set controller.
It wires the modular components together and runs reconcile passes for the
cluster's ControlPlaneMachineSet until interrupted.

Usage:
    python cpms_controller.py --config controller.yaml
    python cpms_controller.py --once --debug
"""

import signal
import sys
import threading

from cpms import (
    ArgumentsParser,
    ControlPlaneMachineSetReconciler,
    FatalConfigurationError,
    OcStoreClient,
    ReconcileRunner,
    build_controller_config,
    execute_oc_command,
    format_runtime,
    printer,
)


def main(argv=None):
    """
    Main function to run the Control Plane Machine Set controller.

    Args:
        argv: Optional argument list (defaults to sys.argv)

    Returns:
        int: Process exit code
    """
    args = ArgumentsParser.parse_arguments(argv)

    try:
        config = build_controller_config(args, printer=printer)
    except FatalConfigurationError as e:
        printer.print_error(str(e))
        return 2

    printer.print_header("Control Plane Machine Set Controller")
    printer.print_info(f"Namespace: {config['namespace']}")
    printer.print_info(f"Control plane machine set: {config['name']}")

    store = OcStoreClient(execute_oc_command=execute_oc_command, printer=printer)
    reconciler = ControlPlaneMachineSetReconciler(
        store,
        namespace=config["namespace"],
        name=config["name"],
        printer=printer,
        progress_requeue_after=config["requeue_interval"],
        fatal_requeue_after=config["fatal_requeue_after"],
    )
    runner = ReconcileRunner(reconciler, config=config, printer=printer, format_runtime=format_runtime)

    if args.once:
        outcome = runner.run_once()
        printer.print_success(f"Reconcile pass finished: {outcome.result}")
        return 0

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        printer.print_warning(f"Received signal {signum}, cancelling the current pass and stopping...")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    runner.run(stop_event=stop_event)
    return 0


if __name__ == "__main__":
    sys.exit(main())
