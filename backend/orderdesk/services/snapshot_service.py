# Overview: Service-layer operations for the validated snapshot (frozen shopping list).

import copy

from ..extensions import store
from ..storage import DEPARTMENTS
from ..time_utils import to_utc_z, utcnow


def empty_snapshot() -> dict:
    return {"validatedAt": None, "commandes": {}}


def validate() -> dict:
    """
    Freeze every department's current draft into a new snapshot.

    Runs in a single store transaction: readers see either the previous
    snapshot or the complete new one.
    """
    with store.transaction() as state:
        snapshot = {
            "validatedAt": to_utc_z(utcnow()),
            "commandes": {
                department: copy.deepcopy(state["orders"].get(department))
                for department in DEPARTMENTS
            },
        }
        state["validated"] = snapshot

    return copy.deepcopy(snapshot)


def get_validated() -> dict:
    """The current snapshot, or the empty form. Never None."""
    snapshot = store.read()["validated"]
    if not snapshot:
        return empty_snapshot()
    result = empty_snapshot()
    result.update(copy.deepcopy(snapshot))
    return result


def reset_validated() -> None:
    with store.transaction() as state:
        state["validated"] = None
