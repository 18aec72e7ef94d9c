#!/usr/bin/env python3
"""
Setup shim for tools that still invoke setup.py directly.
Package metadata for the controller lives in pyproject.toml.
"""

from setuptools import setup

if __name__ == "__main__":
    setup()
