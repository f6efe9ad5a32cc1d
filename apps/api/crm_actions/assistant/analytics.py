from __future__ import annotations

from collections import Counter
from typing import Any


def group_counts(entities: list[dict[str, Any]], key: str) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for entity in entities:
        value = entity.get(key)
        counts[str(value) if value else "unknown"] += 1
    return dict(counts)


def _has(entity: dict[str, Any], key: str) -> bool:
    value = entity.get(key)
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def analyze_contacts(contacts: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "totalContacts": len(contacts),
        "byStatus": group_counts(contacts, "status"),
        "bySource": group_counts(contacts, "source"),
        "withEmail": sum(1 for contact in contacts if _has(contact, "email")),
        "withPhone": sum(1 for contact in contacts if _has(contact, "phone")),
        "withCompany": sum(1 for contact in contacts if _has(contact, "company")),
    }


def contact_stats(contacts: list[dict[str, Any]]) -> dict[str, int]:
    statuses = Counter(str(contact.get("status") or "").lower() for contact in contacts)
    return {
        "total": len(contacts),
        "active": statuses["active"],
        "leads": statuses["lead"],
        "customers": statuses["customer"],
        "archived": statuses["archived"],
    }
