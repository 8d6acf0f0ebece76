# Overview: Flask API routes for department orders; parses input and returns JSON responses.

# backend/orderdesk/routes/orders.py
"""
Department order routes.

POST /api/commandes/<department> is open to every staff terminal. PUT (edit
from the recap page) and the reset endpoints require an elevated session.
"""

from flask import Blueprint, request, jsonify

from ..services import order_service
from ..decorators import require_elevated


orders_bp = Blueprint("orders", __name__, url_prefix="/api")


@orders_bp.get("/commandes")
def list_orders_route():
    """Every department's draft order (null when empty)."""
    return jsonify(order_service.get_all())


@orders_bp.get("/commandes/<department>")
def get_order_route(department: str):
    return jsonify(order_service.get_one(department))


def _write_order(department: str):
    payload = request.get_json(silent=True)
    record = order_service.upsert(department, payload)
    return jsonify({
        "ok": True,
        "department": department,
        "updatedAt": record["updatedAt"],
    })


@orders_bp.post("/commandes/<department>")
def submit_order_route(department: str):
    """
    Submit a department's order from its ordering page.

    Request body, any of:
        {"fields": {"Croissant": "12"}}
        {"fields": {"fields": {"Croissant": "12"}}}
        {"Croissant": "12"}
    """
    return _write_order(department)


@orders_bp.put("/commandes/<department>")
@require_elevated
def edit_order_route(department: str):
    """Edit a department's order from the recap page."""
    return _write_order(department)


@orders_bp.post("/reset/<department>")
@require_elevated
def reset_order_route(department: str):
    order_service.reset_one(department)
    return jsonify({"ok": True, "department": department})


@orders_bp.post("/commandes/<department>/reset")
@require_elevated
def reset_order_alias_route(department: str):
    """Same as POST /api/reset/<department>."""
    order_service.reset_one(department)
    return jsonify({"ok": True, "department": department})


@orders_bp.post("/reset-all")
@require_elevated
def reset_all_route():
    """Clear every department and the validated snapshot."""
    order_service.reset_all()
    return jsonify({"ok": True})
