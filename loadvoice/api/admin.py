from flask import Blueprint, request, jsonify
from ..jobs.maintenance import repair_stuck_calls
from ..utils.decorators import admin_required

bp = Blueprint("admin", __name__)


@bp.post("/admin/calls/repair-stuck")
@admin_required
def repair_stuck():
    body = request.get_json(silent=True) or {}
    max_age = body.get("max_age_minutes")
    if max_age is not None and (not isinstance(max_age, int) or isinstance(max_age, bool) or max_age < 1):
        return jsonify({"success": False, "error": "max_age_minutes must be a positive integer"}), 400
    repaired = repair_stuck_calls(max_age)
    return jsonify({"success": True, "cleaned": len(repaired), "calls": repaired})
