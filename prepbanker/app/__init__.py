from __future__ import annotations

from flask import Flask

from . import config
from .extensions import init_extensions
from .services import db_service


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, template_folder="../../templates", static_folder="../../static")
    app.secret_key = config.SECRET_KEY
    app.config.update(
        SITE_NAME=config.SITE_NAME,
        SUPABASE_URL=config.SUPABASE_URL,
        SUPABASE_ANON_KEY=config.SUPABASE_ANON_KEY,
        SUPABASE_SERVICE_ROLE_KEY=config.SUPABASE_SERVICE_ROLE_KEY,
        ADMIN_USERNAME=config.ADMIN_USERNAME,
        ADMIN_PASSWORD=config.ADMIN_PASSWORD,
        ADMIN_PASSWORD_HASH=config.ADMIN_PASSWORD_HASH,
        LOG_LEVEL=config.LOG_LEVEL,
    )
    if overrides:
        app.config.update(overrides)
        if overrides.get("SECRET_KEY"):
            app.secret_key = overrides["SECRET_KEY"]

    init_extensions(app)
    db_service.init_app(app)

    from .routes.auth import bp as auth_bp
    from .routes.public import bp as public_bp
    from .routes.admin import bp as admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(admin_bp)

    return app
