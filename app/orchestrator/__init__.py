"""Workspace lifecycle orchestrator."""
