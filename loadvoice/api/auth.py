from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from ..models.user import User

bp = Blueprint("auth", __name__)


@bp.post("/auth/login")
def login():
    body = request.get_json(silent=True) or request.form
    user = User.query.filter_by(email=(body.get("email") or "").strip().lower()).first()
    if user and user.check_password(body.get("password") or ""):
        login_user(user)
        return jsonify({"success": True, "user_id": user.id, "org_id": user.org_id})
    return jsonify({"success": False, "error": "Invalid credentials"}), 401


@bp.post("/auth/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.get("/auth/me")
@login_required
def me():
    return jsonify({"id": current_user.id, "email": current_user.email, "name": current_user.display_name,
                    "org_id": current_user.org_id, "role": current_user.role})
