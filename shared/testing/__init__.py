"""Helpers shared by the test suite."""

from .environment import apply_required_test_environment

__all__ = ["apply_required_test_environment"]
