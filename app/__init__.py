"""Workspace Orchestrator.

Provisions, reserves and advances tenant workspaces by running idempotent
transactions against Azure, Kubernetes, the discovery scheduler and Key
Vault, in dependency order.
"""

__version__ = "0.1.0"
__author__ = "Cloud Governance Team"
