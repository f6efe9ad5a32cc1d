from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
from opentelemetry import trace

from crm_actions.context import get_correlation_id
from crm_actions.crm.backends import CrmBackends, CrudResult


logger = logging.getLogger("crm_actions.crm.http")
tracer = trace.get_tracer("crm_actions.crm.http")


def _error_from_body(body: Any, status_code: int) -> str:
    if not isinstance(body, dict):
        return f"CRM API request failed with status {status_code}"
    error = body.get("error") or body.get("message") or f"CRM API request failed with status {status_code}"
    details = body.get("details")
    if isinstance(details, list) and details:
        parts: list[str] = []
        for detail in details:
            if not isinstance(detail, dict):
                continue
            path = detail.get("path")
            field = ".".join(str(item) for item in path) if isinstance(path, list) else str(path or "")
            message = str(detail.get("message", "invalid"))
            parts.append(f"{field}: {message}" if field else message)
        if parts:
            error = f"{error}: {'; '.join(parts)}"
    return str(error)


def to_crud_result(response: httpx.Response, item_key: str | None = None) -> CrudResult:
    try:
        body = response.json()
    except ValueError:
        return CrudResult.fail(f"CRM API returned a non-JSON response (status {response.status_code})")

    if response.status_code >= 400 or not isinstance(body, dict) or body.get("success") is False:
        return CrudResult.fail(_error_from_body(body, response.status_code))

    data = body.get("data")
    if item_key and isinstance(data, dict) and item_key in data:
        data = data[item_key]
    return CrudResult.ok(data)


def path_segment(value: str) -> str:
    """Percent-encode one URL path segment; dot segments and blanks are rejected."""
    text = str(value).strip()
    if text in ("", ".", ".."):
        raise ValueError(f"Invalid identifier: {value!r}")
    return quote(text, safe="")


class HttpEntityBackend:
    def __init__(self, client: "HttpCrmClient", collection: str, item_key: str) -> None:
        self.client = client
        self.collection = collection
        self.item_key = item_key

    def _path(self, workspace_id: str, *parts: str) -> str:
        suffix = "".join(f"/{path_segment(part)}" for part in parts)
        return f"/api/workspaces/{path_segment(workspace_id)}/{self.collection}{suffix}"

    async def _send(self, method: str, workspace_id: str, *parts: str, **kwargs: Any) -> CrudResult:
        try:
            path = self._path(workspace_id, *parts)
        except ValueError as exc:
            return CrudResult.fail(str(exc))
        return await self.client.request(method, path, **kwargs)

    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult:
        return await self._send("POST", workspace_id, json=fields, item_key=self.item_key)

    async def update(self, workspace_id: str, entity_id: str, patch: dict[str, Any]) -> CrudResult:
        return await self._send("PATCH", workspace_id, entity_id, json=patch, item_key=self.item_key)

    async def delete(self, workspace_id: str, entity_id: str) -> CrudResult:
        return await self._send("DELETE", workspace_id, entity_id)

    async def list(self, workspace_id: str) -> CrudResult:
        return await self._send(
            "GET",
            workspace_id,
            params={"limit": self.client.page_size},
            item_key=self.collection,
        )


class HttpPipelineBackend(HttpEntityBackend):
    def __init__(self, client: "HttpCrmClient") -> None:
        super().__init__(client, "pipelines", "pipeline")

    async def add_stage(self, workspace_id: str, pipeline_id: str, stage: dict[str, Any]) -> CrudResult:
        return await self._send("POST", workspace_id, pipeline_id, "stages", json=stage, item_key=self.item_key)

    async def update_stage(
        self, workspace_id: str, pipeline_id: str, stage_id: str, patch: dict[str, Any]
    ) -> CrudResult:
        return await self._send(
            "PATCH", workspace_id, pipeline_id, "stages", stage_id, json=patch, item_key=self.item_key
        )

    async def delete_stage(self, workspace_id: str, pipeline_id: str, stage_id: str) -> CrudResult:
        return await self._send("DELETE", workspace_id, pipeline_id, "stages", stage_id, item_key=self.item_key)

    async def reorder_stages(self, workspace_id: str, pipeline_id: str, stage_order: list[str]) -> CrudResult:
        return await self._send(
            "POST",
            workspace_id,
            pipeline_id,
            "stages",
            "reorder",
            json={"stageOrder": stage_order},
            item_key=self.item_key,
        )


class HttpOpportunityBackend(HttpEntityBackend):
    def __init__(self, client: "HttpCrmClient") -> None:
        super().__init__(client, "opportunities", "opportunity")

    async def move(
        self, workspace_id: str, opportunity_id: str, stage_id: str, pipeline_id: str | None = None
    ) -> CrudResult:
        payload: dict[str, Any] = {"stageId": stage_id}
        if pipeline_id:
            payload["pipelineId"] = pipeline_id
        return await self._send("PATCH", workspace_id, opportunity_id, "move", json=payload, item_key=self.item_key)


class HttpCrmClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 15.0,
        page_size: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.page_size = page_size
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self.contacts = HttpEntityBackend(self, "contacts", "contact")
        self.companies = HttpEntityBackend(self, "companies", "company")
        self.pipelines = HttpPipelineBackend(self)
        self.opportunities = HttpOpportunityBackend(self)

    def backends(self) -> CrmBackends:
        return CrmBackends(
            contacts=self.contacts,
            companies=self.companies,
            pipelines=self.pipelines,
            opportunities=self.opportunities,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.token:
            headers["authorization"] = f"Bearer {self.token}"
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["x-correlation-id"] = correlation_id
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        item_key: str | None = None,
    ) -> CrudResult:
        with tracer.start_as_current_span("crm.http.request") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("crm.path", path)
            response = await self._client.request(method, path, json=json, params=params, headers=self._headers())
            span.set_attribute("http.status_code", response.status_code)
        result = to_crud_result(response, item_key=item_key)
        if not result.success:
            logger.info(
                "crm.http.failed",
                extra={"method": method, "path": path, "status_code": response.status_code, "error": result.error},
            )
        return result

    async def aclose(self) -> None:
        await self._client.aclose()
