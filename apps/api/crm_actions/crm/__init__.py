from crm_actions.crm.backends import (
    CrmBackends,
    CrudResult,
    EmailBackend,
    EntityBackend,
    OpportunityBackend,
    PipelineBackend,
    entity_id,
)
from crm_actions.crm.http_client import HttpCrmClient
from crm_actions.crm.memory import InMemoryCrmStore

__all__ = [
    "CrmBackends",
    "CrudResult",
    "EmailBackend",
    "EntityBackend",
    "OpportunityBackend",
    "PipelineBackend",
    "entity_id",
    "HttpCrmClient",
    "InMemoryCrmStore",
]
