"""Kubernetes API client for workspace releases.

Talks to the API server over REST. Objects are written with server-side
apply, so applying the same manifest twice is a no-op.
"""

import logging
from typing import Any

import httpx

from app.core.config import Settings
from app.core.retry import KUBERNETES_API_POLICY, is_not_found_error, retry_with_backoff

logger = logging.getLogger(__name__)

FIELD_MANAGER = "workspace-orchestrator"
APPLY_CONTENT_TYPE = "application/apply-patch+yaml"

HELM_RELEASE_API = "helm.toolkit.fluxcd.io/v2"
RBAC_API = "rbac.authorization.k8s.io/v1"


def condition_status(obj: dict[str, Any] | None, condition_type: str) -> str | None:
    """Status ("True"/"False"/"Unknown") of a status condition, or None."""
    if not obj:
        return None
    for condition in obj.get("status", {}).get("conditions", []):
        if condition.get("type") == condition_type:
            return condition.get("status")
    return None


class KubernetesClient:
    """Minimal Kubernetes REST client."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.base_url = settings.kubernetes_api_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.kubernetes_token:
            headers["Authorization"] = f"Bearer {self.settings.kubernetes_token}"
        return headers

    @retry_with_backoff(KUBERNETES_API_POLICY)
    async def _request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> dict[str, Any]:
        """Make authenticated request to the API server."""
        async with httpx.AsyncClient(
            verify=self.settings.kubernetes_ca_bundle or True,
            timeout=self.settings.http_timeout_seconds,
        ) as client:
            response = await client.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers={**self._headers(), **(headers or {})},
                json=json,
                params=params,
            )
            response.raise_for_status()
            return response.json() if response.content else {}

    async def apply(self, path: str, manifest: dict[str, Any]) -> dict[str, Any]:
        """Server-side apply ``manifest`` at ``path``."""
        return await self._request(
            "PATCH",
            path,
            json=manifest,
            params={"fieldManager": FIELD_MANAGER, "force": "true"},
            headers={"Content-Type": APPLY_CONTENT_TYPE},
        )

    async def get(self, path: str) -> dict[str, Any] | None:
        """Get an object, or None if it does not exist."""
        try:
            return await self._request("GET", path)
        except httpx.HTTPStatusError as e:
            if is_not_found_error(e):
                return None
            raise

    async def delete(self, path: str) -> None:
        """Delete an object; a missing object is fine."""
        try:
            await self._request("DELETE", path)
        except httpx.HTTPStatusError as e:
            if not is_not_found_error(e):
                raise
            logger.debug(f"{path} already deleted")

    # ==========================================================================
    # Helm releases
    # ==========================================================================

    def _helm_release_path(self, name: str) -> str:
        return (
            f"/apis/{HELM_RELEASE_API}/namespaces/{self.settings.flux_system_namespace}"
            f"/helmreleases/{name}"
        )

    async def apply_helm_release(
        self, name: str, target_namespace: str, values: dict[str, Any]
    ) -> dict[str, Any]:
        manifest = {
            "apiVersion": HELM_RELEASE_API,
            "kind": "HelmRelease",
            "metadata": {
                "name": name,
                "namespace": self.settings.flux_system_namespace,
                "labels": {"workspace": name},
            },
            "spec": {
                "interval": "5m",
                "targetNamespace": target_namespace,
                "install": {"createNamespace": True},
                "chart": {
                    "spec": {
                        "chart": self.settings.helm_chart_name,
                        "sourceRef": {
                            "kind": "HelmRepository",
                            "name": self.settings.helm_chart_location or "workspace-charts",
                        },
                    }
                },
                "values": values,
            },
        }
        return await self.apply(self._helm_release_path(name), manifest)

    async def get_helm_release(self, name: str) -> dict[str, Any] | None:
        return await self.get(self._helm_release_path(name))

    async def delete_helm_release(self, name: str) -> None:
        await self.delete(self._helm_release_path(name))

    # ==========================================================================
    # RBAC
    # ==========================================================================

    def _role_binding_path(self, namespace: str, name: str) -> str:
        return f"/apis/{RBAC_API}/namespaces/{namespace}/rolebindings/{name}"

    async def apply_role_binding(
        self, namespace: str, name: str, role: str, user: str
    ) -> dict[str, Any]:
        manifest = {
            "apiVersion": RBAC_API,
            "kind": "RoleBinding",
            "metadata": {"name": name, "namespace": namespace},
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": role,
            },
            "subjects": [
                {"apiGroup": "rbac.authorization.k8s.io", "kind": "User", "name": user}
            ],
        }
        return await self.apply(self._role_binding_path(namespace, name), manifest)

    async def delete_role_binding(self, namespace: str, name: str) -> None:
        await self.delete(self._role_binding_path(namespace, name))

    # ==========================================================================
    # Pods
    # ==========================================================================

    async def list_pods(self, namespace: str) -> list[dict[str, Any]]:
        """List pods in a namespace; a missing namespace has no pods."""
        data = await self.get(f"/api/v1/namespaces/{namespace}/pods")
        return data.get("items", []) if data else []
