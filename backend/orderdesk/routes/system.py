# backend/orderdesk/routes/system.py
"""
System health and version endpoints.
"""

import os
import time
from flask import Blueprint, current_app

from ..extensions import store, sessions
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


@system_bp.get("/")
def index():
    return "Orderdesk backend OK", 200, {"Content-Type": "text/plain; charset=utf-8"}


def check_store_health() -> dict:
    """
    Check the data file can be read and its directory written.

    A missing file is healthy (it is created on the first write).
    """
    start_time = time.time()
    try:
        state = store.read()
        directory = os.path.dirname(os.path.abspath(store.path))
        writable = os.access(directory, os.W_OK) if os.path.isdir(directory) else os.access(
            os.path.dirname(directory), os.W_OK
        )
        elapsed_ms = (time.time() - start_time) * 1000

        if not writable:
            return {
                "status": "unhealthy",
                "latency_ms": round(elapsed_ms, 2),
                "error": "Data directory is not writable",
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "version": state["version"],
                "exists": os.path.exists(store.path),
                "credentials": len(state["credentials"]),
                "departments_with_orders": sum(1 for r in state["orders"].values() if r),
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Store error",
        }


def check_session_health() -> dict:
    start_time = time.time()
    try:
        count = sessions.count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "backend": current_app.config["SESSION_BACKEND"],
                "sessions": count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session backend error",
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All checks healthy
    - 503: One or more checks unhealthy
    """
    start_time = time.time()

    store_health = check_store_health()
    session_health = check_session_health()

    all_checks = [store_health, session_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "store": store_health,
            "sessions": session_health,
        },
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Non-sensitive deployment information. Never exposes secrets or paths.
    """
    import sys
    from .. import __version__

    env = "production" if not current_app.debug else "development"

    return {
        "api_version": __version__,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
