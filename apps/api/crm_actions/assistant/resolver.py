from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from crm_actions.crm.backends import PipelineBackend, entity_id
from crm_actions.metrics import observe_stage_fallback


logger = logging.getLogger("crm_actions.assistant.resolver")
tracer = trace.get_tracer("crm_actions.assistant.resolver")

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and OBJECT_ID_RE.match(value.strip()) is not None


@dataclass(frozen=True)
class PipelineRef:
    pipeline_id: str
    pipeline: dict[str, Any] | None = None


@dataclass(frozen=True)
class PipelineStageRef:
    pipeline_id: str
    stage_id: str
    fell_back: bool = False


@dataclass(frozen=True)
class ResolutionError:
    error: str


def match_by_name(candidates: list[dict[str, Any]], query: str) -> dict[str, Any] | None:
    """Case-insensitive exact match first, then substring match in either direction."""
    needle = query.strip().lower()
    if not needle:
        return None
    named = [(str(item.get("name") or "").strip().lower(), item) for item in candidates]
    for name, item in named:
        if name == needle:
            return item
    for name, item in named:
        if name and (needle in name or name in needle):
            return item
    return None


def ordered_stages(pipeline: dict[str, Any]) -> list[dict[str, Any]]:
    stages = pipeline.get("stages") or []
    return sorted(
        (stage for stage in stages if isinstance(stage, dict)),
        key=lambda stage: stage.get("order", 0) if isinstance(stage.get("order"), (int, float)) else 0,
    )


class ReferenceResolver:
    def __init__(self, pipelines: PipelineBackend) -> None:
        self.pipelines = pipelines

    async def fetch_pipelines(self, workspace_id: str) -> list[dict[str, Any]] | ResolutionError:
        with tracer.start_as_current_span("assistant.resolver.fetch_pipelines") as span:
            span.set_attribute("workspace_id", workspace_id)
            try:
                result = await self.pipelines.list(workspace_id)
            except Exception as exc:
                logger.warning("assistant.resolver.fetch_failed", extra={"error": str(exc)})
                return ResolutionError(f"Failed to fetch pipelines: {exc}")
            if not result.success or not isinstance(result.data, list):
                logger.warning("assistant.resolver.fetch_failed", extra={"error": result.error})
                return ResolutionError(f"Failed to fetch pipelines: {result.error or 'unexpected response'}")
            span.set_attribute("pipeline_count", len(result.data))
            return [item for item in result.data if isinstance(item, dict)]

    def _find_pipeline(self, pipelines: list[dict[str, Any]], query: str) -> dict[str, Any] | ResolutionError:
        if is_object_id(query):
            for pipeline in pipelines:
                if entity_id(pipeline) == query.strip():
                    return pipeline
        matched = match_by_name(pipelines, query)
        if matched is not None:
            return matched
        names = ", ".join(f'"{item.get("name")}"' for item in pipelines) or "none"
        return ResolutionError(f'Pipeline "{query}" not found. Available pipelines: {names}')

    async def resolve_pipeline(self, workspace_id: str, pipeline_id_or_name: str) -> PipelineRef | ResolutionError:
        if is_object_id(pipeline_id_or_name):
            return PipelineRef(pipeline_id=pipeline_id_or_name.strip())

        loaded = await self.load_pipeline(workspace_id, pipeline_id_or_name)
        if isinstance(loaded, PipelineRef):
            logger.info(
                "assistant.resolver.pipeline",
                extra={"query": pipeline_id_or_name, "pipeline_id": loaded.pipeline_id},
            )
        return loaded

    async def load_pipeline(self, workspace_id: str, pipeline_id_or_name: str) -> PipelineRef | ResolutionError:
        """Resolve a pipeline and always return its live record, even for ID input."""
        pipelines = await self.fetch_pipelines(workspace_id)
        if isinstance(pipelines, ResolutionError):
            return pipelines
        pipeline = self._find_pipeline(pipelines, pipeline_id_or_name)
        if isinstance(pipeline, ResolutionError):
            return pipeline
        resolved_id = entity_id(pipeline)
        if resolved_id is None:
            return ResolutionError(f'Pipeline "{pipeline.get("name")}" has no ID')
        return PipelineRef(pipeline_id=resolved_id, pipeline=pipeline)

    async def resolve_pipeline_and_stage(
        self,
        workspace_id: str,
        pipeline_id_or_name: str,
        stage_id_or_name: str,
        *,
        fallback_to_first_stage: bool = True,
    ) -> PipelineStageRef | ResolutionError:
        if is_object_id(pipeline_id_or_name) and is_object_id(stage_id_or_name):
            return PipelineStageRef(pipeline_id=pipeline_id_or_name.strip(), stage_id=stage_id_or_name.strip())

        loaded = await self.load_pipeline(workspace_id, pipeline_id_or_name)
        if isinstance(loaded, ResolutionError):
            return loaded
        pipeline = loaded.pipeline or {}
        pipeline_name = pipeline.get("name")

        stages = ordered_stages(pipeline)
        if not stages:
            return ResolutionError(f'Pipeline "{pipeline_name}" has no stages')

        stage: dict[str, Any] | None = None
        if is_object_id(stage_id_or_name):
            stage = next((item for item in stages if entity_id(item) == stage_id_or_name.strip()), None)
        if stage is None:
            stage = match_by_name(stages, stage_id_or_name)

        fell_back = False
        if stage is None:
            if not fallback_to_first_stage:
                names = ", ".join(f'"{item.get("name")}"' for item in stages)
                return ResolutionError(
                    f'Stage "{stage_id_or_name}" not found in pipeline "{pipeline_name}". Available stages: {names}'
                )
            stage = stages[0]
            fell_back = True
            observe_stage_fallback()
            logger.warning(
                "assistant.resolver.stage_fallback",
                extra={
                    "query": stage_id_or_name,
                    "pipeline_id": loaded.pipeline_id,
                    "stage_id": entity_id(stage),
                    "reason": f'stage "{stage_id_or_name}" not found, using first stage "{stage.get("name")}"',
                },
            )

        stage_id = entity_id(stage)
        if stage_id is None:
            return ResolutionError(f'Stage "{stage.get("name")}" has no ID')
        return PipelineStageRef(pipeline_id=loaded.pipeline_id, stage_id=stage_id, fell_back=fell_back)
