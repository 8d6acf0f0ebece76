# Overview: Flask API routes for the validation workflow (snapshot for procurement).

from flask import Blueprint, jsonify

from ..services import snapshot_service
from ..decorators import require_elevated


validated_bp = Blueprint("validated", __name__, url_prefix="/api")


@validated_bp.post("/validate")
@require_elevated
def validate_route():
    """Freeze the current orders into the validated snapshot."""
    snapshot = snapshot_service.validate()
    return jsonify({"ok": True, "validatedAt": snapshot["validatedAt"]})


@validated_bp.get("/validated")
def get_validated_route():
    """
    The validated snapshot for the shopping-list page.

    Always an object: {"validatedAt": null, "commandes": {}} when nothing
    has been validated.
    """
    return jsonify(snapshot_service.get_validated())


@validated_bp.post("/validated/reset")
@require_elevated
def reset_validated_route():
    snapshot_service.reset_validated()
    return jsonify({"ok": True})
