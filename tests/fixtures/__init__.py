"""Test doubles for orchestrator tests."""

from .transactions import FakeTransaction

__all__ = [
    "FakeTransaction",
]
