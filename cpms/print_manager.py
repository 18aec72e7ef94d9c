#!/usr/bin/env python3
"""Print Manager module for the Control Plane Machine Set controller."""

from dataclasses import dataclass

# Global debug flag
DEBUG_MODE = False

# Verbosity levels, matching the controller's structured log levels
LEVEL_ERROR = 0
LEVEL_WARNING = 1
LEVEL_INFO = 2
LEVEL_TRACE = 4


@dataclass(frozen=True)
class Observation:
    """A leveled message produced by a reconcile step, routed by the caller"""

    level: int
    message: str

    @classmethod
    def error(cls, message):
        return cls(LEVEL_ERROR, message)

    @classmethod
    def warning(cls, message):
        return cls(LEVEL_WARNING, message)

    @classmethod
    def info(cls, message):
        return cls(LEVEL_INFO, message)

    @classmethod
    def trace(cls, message):
        return cls(LEVEL_TRACE, message)


class PrintManager:
    """Manages all output formatting and printing for the application"""

    @staticmethod
    def print_header(message):
        """Print a section header with visual separation"""
        print(f"\n{'=' * 60}")
        print(f" {message.upper()}")
        print(f"{'=' * 60}")

    @staticmethod
    def print_info(message):
        """Print informational message"""
        print(f"    [INFO]  {message}")

    @staticmethod
    def print_success(message):
        """Print success message"""
        print(f"    [✓]     {message}")

    @staticmethod
    def print_warning(message):
        """Print warning message"""
        print(f"    [⚠️]     {message}")

    @staticmethod
    def print_error(message):
        """Print error message"""
        print(f"    [✗]     {message}")

    @staticmethod
    def print_action(message):
        """Print action being performed (only in debug mode)"""
        if DEBUG_MODE:
            print(f"    [ACTION] {message}")

    @staticmethod
    def print_trace(message):
        """Print low-severity trace message (only in debug mode)"""
        if DEBUG_MODE:
            print(f"    [TRACE] {message}")

    def emit(self, observation):
        """
        Route an Observation to the print method matching its level.

        Args:
            observation (Observation): The observation to print
        """
        if observation.level <= LEVEL_ERROR:
            self.print_error(observation.message)
        elif observation.level == LEVEL_WARNING:
            self.print_warning(observation.message)
        elif observation.level <= LEVEL_INFO:
            self.print_info(observation.message)
        else:
            self.print_trace(observation.message)

    def emit_all(self, observations):
        """Route a sequence of Observations in order"""
        for observation in observations:
            self.emit(observation)


# Create a global print manager instance for convenience
printer = PrintManager()
