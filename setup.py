"""Setuptools build hooks for Strata."""

from __future__ import annotations

from setuptools import setup

# Metadata lives in pyproject.toml; the project ships pure Python modules only,
# so the default command classes produce a ``py3-none-any`` wheel.
setup()
