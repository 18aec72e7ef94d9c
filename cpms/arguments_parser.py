#!/usr/bin/env python3
"""Arguments Parser module for the Control Plane Machine Set controller."""

import argparse

from . import print_manager


class ArgumentsParser:
    """Handles command-line argument parsing for the controller"""

    @staticmethod
    def build_parser():
        """
        Build the argument parser.

        Returns:
            argparse.ArgumentParser: Configured parser
        """
        parser = argparse.ArgumentParser(
            description="Reconcile the control plane machine set against the control plane machines in a cluster"
        )

        parser.add_argument(
            "--config",
            type=str,
            required=False,
            help="Path to a YAML file with controller settings",
        )
        parser.add_argument(
            "--namespace",
            type=str,
            required=False,
            default=None,
            help="Namespace holding the control plane machine set (default: openshift-machine-api)",
        )
        parser.add_argument(
            "--name",
            type=str,
            required=False,
            default=None,
            help="Name of the control plane machine set to reconcile (default: cluster)",
        )
        parser.add_argument(
            "--check-interval",
            type=int,
            required=False,
            default=None,
            help="Seconds between reconcile passes when nothing is in progress (default: 30)",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single reconcile pass and exit",
        )
        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug output (shows command execution details and trace messages)",
        )
        return parser

    @staticmethod
    def parse_arguments(argv=None):
        """
        Parse command-line arguments and return configuration

        Args:
            argv: Optional argument list (defaults to sys.argv)

        Returns:
            argparse.Namespace: Parsed arguments
        """
        args = ArgumentsParser.build_parser().parse_args(argv)

        # Set global debug mode
        print_manager.DEBUG_MODE = args.debug

        return args
