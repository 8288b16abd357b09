import logging
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from .extensions import db, login_manager, migrate, rq


def create_app(config_object='config.Config'):
    """App factory: JSON API for uploading and processing calls."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    rq.init_app(app)

    # models must be imported before create_all / alembic autogenerate
    from . import models  # noqa: F401

    @login_manager.user_loader
    def load_user(user_id):
        from .models.user import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Authentication required"}), 401

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"success": False, "error": e.description, "details": None}), e.code

    from .api.auth import bp as auth_bp
    from .api.calls import bp as calls_bp
    from .api.webhooks import bp as webhooks_bp
    from .api.admin import bp as admin_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(calls_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(admin_bp)

    @app.get('/health')
    def health():
        return jsonify({"ok": True, "queue": "redis" if rq.queue is not None else "sync"})

    return app
