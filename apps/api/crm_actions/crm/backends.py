from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class CrudResult:
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "CrudResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "CrudResult":
        return cls(success=False, error=error)


class EntityBackend(Protocol):
    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult: ...

    async def update(self, workspace_id: str, entity_id: str, patch: dict[str, Any]) -> CrudResult: ...

    async def delete(self, workspace_id: str, entity_id: str) -> CrudResult: ...

    async def list(self, workspace_id: str) -> CrudResult: ...


class PipelineBackend(EntityBackend, Protocol):
    async def add_stage(self, workspace_id: str, pipeline_id: str, stage: dict[str, Any]) -> CrudResult: ...

    async def update_stage(
        self, workspace_id: str, pipeline_id: str, stage_id: str, patch: dict[str, Any]
    ) -> CrudResult: ...

    async def delete_stage(self, workspace_id: str, pipeline_id: str, stage_id: str) -> CrudResult: ...

    async def reorder_stages(self, workspace_id: str, pipeline_id: str, stage_order: list[str]) -> CrudResult: ...


class OpportunityBackend(EntityBackend, Protocol):
    async def move(
        self, workspace_id: str, opportunity_id: str, stage_id: str, pipeline_id: str | None = None
    ) -> CrudResult: ...


class EmailBackend(Protocol):
    async def send(self, workspace_id: str, to: str, subject: str, body: str) -> CrudResult: ...


@dataclass
class CrmBackends:
    contacts: EntityBackend
    companies: EntityBackend
    pipelines: PipelineBackend
    opportunities: OpportunityBackend
    email: EmailBackend | None = None


def entity_id(entity: Any) -> str | None:
    if not isinstance(entity, dict):
        return None
    value = entity.get("_id", entity.get("id"))
    return str(value) if value is not None else None
