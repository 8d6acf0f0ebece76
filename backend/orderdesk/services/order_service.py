# Overview: Service-layer operations for department orders; read, upsert and reset drafts.

"""
Department Order Service

One draft OrderRecord per department:

    {"department": "bar", "fields": {"Coca": "6"}, "updatedAt": "...Z"}

A department that was never written (or was reset) is stored as null.
get_one() turns that into an empty placeholder; get_all() reports null.

MERGE POLICY (ORDER_MERGE_POLICY):
- "merge": shallow merge into the existing fields, later write wins per key
- "replace": the payload becomes the whole order
"""

import copy

from flask import current_app

from ..extensions import store
from ..storage import DEPARTMENTS
from ..time_utils import to_utc_z, utcnow
from ..validation import UnknownDepartmentError, ValidationError, extract_fields


MERGE_POLICIES = ("merge", "replace")


def ensure_department(department: str) -> str:
    if department not in DEPARTMENTS:
        raise UnknownDepartmentError(
            f"Unknown department: {department}. Expected one of: {', '.join(DEPARTMENTS)}"
        )
    return department


def empty_record(department: str) -> dict:
    return {"department": department, "fields": {}, "updatedAt": None}


def _merge_policy() -> str:
    policy = current_app.config.get("ORDER_MERGE_POLICY", "merge")
    if policy not in MERGE_POLICIES:
        raise ValueError(f"Invalid ORDER_MERGE_POLICY: {policy!r}")
    return policy


def get_all() -> dict:
    """Every department's record, or None for departments without a draft."""
    orders = store.read()["orders"]
    return {department: copy.deepcopy(orders.get(department)) for department in DEPARTMENTS}


def get_one(department: str) -> dict:
    ensure_department(department)
    record = store.read()["orders"].get(department)
    if record is None:
        return empty_record(department)
    return copy.deepcopy(record)


def upsert(department: str, payload, policy: str | None = None) -> dict:
    """
    Write a department's draft order.

    payload may be {"fields": {...}}, {"fields": {"fields": {...}}} or a bare
    mapping. Returns the stored record.
    """
    ensure_department(department)
    if payload is not None and not isinstance(payload, dict):
        raise ValidationError("Order payload must be a JSON object")

    fields = extract_fields(payload)
    policy = policy or _merge_policy()

    with store.transaction() as state:
        existing = state["orders"].get(department)
        if policy == "merge" and existing is not None:
            merged = dict(existing.get("fields") or {})
            merged.update(fields)
        else:
            merged = fields

        record = {
            "department": department,
            "fields": merged,
            "updatedAt": to_utc_z(utcnow()),
        }
        state["orders"][department] = record

    return copy.deepcopy(record)


def reset_one(department: str) -> None:
    ensure_department(department)
    with store.transaction() as state:
        state["orders"][department] = None


def reset_all() -> None:
    """Clear every department and the validated snapshot."""
    with store.transaction() as state:
        for department in DEPARTMENTS:
            state["orders"][department] = None
        state["validated"] = None
