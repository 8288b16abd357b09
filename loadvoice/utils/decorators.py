import hmac
from functools import wraps
from flask import abort, current_app, request
from flask_login import current_user


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if getattr(current_user, "role", None) != "admin":
            abort(403)
        return view(*args, **kwargs)
    return wrapped


def pipeline_token_required(view):
    """Internal callers authenticate with the shared X-Pipeline-Token secret."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        secret = current_app.config.get("PIPELINE_WEBHOOK_SECRET")
        if not secret:
            abort(503, description="Pipeline webhook is not configured")
        token = request.headers.get("X-Pipeline-Token", "")
        if not token:
            abort(401)
        if not hmac.compare_digest(token.encode(), secret.encode()):
            abort(403)
        return view(*args, **kwargs)
    return wrapped
