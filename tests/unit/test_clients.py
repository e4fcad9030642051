"""Tests for the Kubernetes and scheduler API clients."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.api.services.kubernetes_client import (
    APPLY_CONTENT_TYPE,
    FIELD_MANAGER,
    KubernetesClient,
    condition_status,
)
from app.api.services.scheduler_client import (
    AnalyticsJobStatus,
    DescribeAllJobsStatus,
    SchedulerClient,
)


def http_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.com")
    return httpx.HTTPStatusError(
        str(status_code), request=request, response=httpx.Response(status_code, request=request)
    )


class TestKubernetesClient:
    """Tests for KubernetesClient."""

    @pytest.fixture
    def client(self, settings):
        return KubernetesClient(settings)

    @pytest.mark.asyncio
    async def test_apply_uses_server_side_apply(self, client):
        with patch.object(client, "_request", new=AsyncMock(return_value={})) as request:
            await client.apply_role_binding("ws-1", "ws-1-owner", "workspace-admin", "user-1")

        method, path = request.await_args.args
        kwargs = request.await_args.kwargs
        assert method == "PATCH"
        assert path == "/apis/rbac.authorization.k8s.io/v1/namespaces/ws-1/rolebindings/ws-1-owner"
        assert kwargs["params"] == {"fieldManager": FIELD_MANAGER, "force": "true"}
        assert kwargs["headers"]["Content-Type"] == APPLY_CONTENT_TYPE
        assert kwargs["json"]["subjects"][0]["name"] == "user-1"

    @pytest.mark.asyncio
    async def test_helm_release_lives_in_flux_namespace(self, client, settings):
        with patch.object(client, "_request", new=AsyncMock(return_value={})) as request:
            await client.apply_helm_release("ws-1", "ws-1", {"workspace": {"id": "ws-1"}})

        path = request.await_args.args[1]
        manifest = request.await_args.kwargs["json"]
        assert f"/namespaces/{settings.flux_system_namespace}/helmreleases/ws-1" in path
        assert manifest["spec"]["targetNamespace"] == "ws-1"
        assert manifest["spec"]["values"] == {"workspace": {"id": "ws-1"}}

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, client):
        with patch.object(client, "_request", new=AsyncMock(side_effect=http_status_error(404))):
            assert await client.get_helm_release("ws-1") is None

    @pytest.mark.asyncio
    async def test_get_forbidden_raises(self, client):
        with patch.object(client, "_request", new=AsyncMock(side_effect=http_status_error(403))):
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_helm_release("ws-1")

    @pytest.mark.asyncio
    async def test_delete_missing_is_fine(self, client):
        with patch.object(client, "_request", new=AsyncMock(side_effect=http_status_error(404))):
            await client.delete_role_binding("ws-1", "ws-1-owner")

    @pytest.mark.asyncio
    async def test_list_pods_in_missing_namespace(self, client):
        with patch.object(client, "_request", new=AsyncMock(side_effect=http_status_error(404))):
            assert await client.list_pods("ws-1") == []

    @pytest.mark.asyncio
    async def test_list_pods(self, client):
        pods = {"items": [{"metadata": {"name": "a"}}]}
        with patch.object(client, "_request", new=AsyncMock(return_value=pods)):
            assert await client.list_pods("ws-1") == pods["items"]

    def test_bearer_token(self, settings):
        settings.kubernetes_token = "sa-token"
        assert KubernetesClient(settings)._headers()["Authorization"] == "Bearer sa-token"

    def test_condition_status(self):
        obj = {"status": {"conditions": [{"type": "Ready", "status": "False"}]}}
        assert condition_status(obj, "Ready") == "False"
        assert condition_status(obj, "Stalled") is None
        assert condition_status(None, "Ready") is None


class TestSchedulerClient:
    """Tests for SchedulerClient."""

    @pytest.fixture
    def client(self, settings):
        return SchedulerClient(settings, "ws-1")

    def test_base_url_uses_namespace(self, client):
        assert client.base_url == "http://scheduler.ws-1.svc.cluster.local:5000"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        ["RESOURCES_PUBLISHED", {"status": "RESOURCES_PUBLISHED"}],
    )
    async def test_describe_status(self, client, payload):
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)):
            status = await client.get_describe_all_jobs_status()
        assert status == DescribeAllJobsStatus.RESOURCES_PUBLISHED

    @pytest.mark.asyncio
    async def test_unknown_describe_status(self, client):
        with patch.object(client, "_request", new=AsyncMock(return_value="REBOOTING")):
            assert await client.get_describe_all_jobs_status() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [42, {"id": 42}])
    async def test_trigger_returns_job_id(self, client, payload):
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)) as request:
            assert await client.trigger_analytics_job() == 42
        request.assert_awaited_once_with("PUT", "/api/v1/analytics/trigger")

    @pytest.mark.asyncio
    async def test_trigger_without_id_raises(self, client):
        with patch.object(client, "_request", new=AsyncMock(return_value={})):
            with pytest.raises(ValueError):
                await client.trigger_analytics_job()

    @pytest.mark.asyncio
    async def test_job_status(self, client):
        job = {"id": 42, "status": "IN_PROGRESS"}
        with patch.object(client, "_request", new=AsyncMock(return_value=job)):
            assert await client.get_analytics_job_status(42) == AnalyticsJobStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unknown_job(self, client):
        with patch.object(client, "_request", new=AsyncMock(side_effect=http_status_error(404))):
            assert await client.get_analytics_job(42) is None
            assert await client.get_analytics_job_status(42) is None

    @pytest.mark.asyncio
    async def test_request_sends_internal_role(self, client):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                200, json={"status": request.headers["X-User-Role"]}
            )
        )
        real_client = httpx.AsyncClient

        def make_client(**kwargs):
            return real_client(transport=transport, **kwargs)

        with patch("app.api.services.scheduler_client.httpx.AsyncClient", side_effect=make_client):
            data = await client._request("GET", "/api/v1/describe/status")

        assert data == {"status": "internal"}
