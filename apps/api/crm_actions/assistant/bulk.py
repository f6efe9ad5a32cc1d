from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from crm_actions.assistant.commands import ActionResult, BulkItemOutcome
from crm_actions.assistant.descriptions import pluralize
from crm_actions.crm.backends import CrudResult


logger = logging.getLogger("crm_actions.assistant.bulk")

BulkOperation = Callable[[str], Awaitable[CrudResult]]


def _outcome(item_id: str, settled: CrudResult | BaseException) -> BulkItemOutcome:
    if isinstance(settled, BaseException):
        return BulkItemOutcome(id=item_id, success=False, error=str(settled) or settled.__class__.__name__)
    if isinstance(settled, CrudResult) and settled.success:
        return BulkItemOutcome(id=item_id, success=True)
    error = settled.error if isinstance(settled, CrudResult) else "unexpected result"
    return BulkItemOutcome(id=item_id, success=False, error=error or "operation failed")


def bulk_message(verb: str, success_count: int, fail_count: int, singular: str, plural: str | None = None) -> str:
    message = f"{verb} {pluralize(success_count, singular, plural)}"
    if fail_count > 0:
        message += f", {fail_count} failed"
    return message


async def run_bulk(
    ids: list[str],
    operation: BulkOperation,
    *,
    verb: str,
    singular: str,
    plural: str | None = None,
) -> ActionResult:
    """Apply ``operation`` to every ID concurrently and report aggregate counts.

    Every call settles independently: an exception or a failed ``CrudResult``
    for one ID never cancels the others.
    """
    settled = await asyncio.gather(*(operation(item_id) for item_id in ids), return_exceptions=True)
    items = [_outcome(item_id, result) for item_id, result in zip(ids, settled)]

    success_count = sum(1 for item in items if item.success)
    fail_count = len(items) - success_count
    if fail_count:
        logger.info(
            "assistant.bulk.partial_failure",
            extra={"success_count": success_count, "fail_count": fail_count},
        )

    return ActionResult(
        success=fail_count == 0,
        message=bulk_message(verb, success_count, fail_count, singular, plural),
        data={"successCount": success_count, "failCount": fail_count},
        items=items,
    )
