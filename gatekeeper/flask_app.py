"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, middleware, and configuration.
"""
from __future__ import annotations
from typing import Optional

import redis
from flask import Flask
from flask_session import Session
from werkzeug.middleware.proxy_fix import ProxyFix

from gatekeeper.config import AppConfig, load_settings
from gatekeeper.core.accounts import AccountLinkService, LocalAccountService
from gatekeeper.core.messaging import MessageDispatcher
from gatekeeper.services import EXTENSION_KEY, build_redis_client, build_services


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    cfg: Optional[AppConfig] = None,
    *,
    redis_client: Optional[redis.Redis] = None,
    account_service: Optional[LocalAccountService] = None,
    link_service: Optional[AccountLinkService] = None,
    dispatcher: Optional[MessageDispatcher] = None,
) -> Flask:
    """Create and configure Flask application.

    Collaborators may be injected; anything left out is built from ``cfg``.
    """
    # Load configuration
    cfg = cfg or load_settings()
    redis_client = redis_client if redis_client is not None else build_redis_client(cfg)

    # Create Flask app
    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["DEMO_MODE"] = cfg.demo_mode
    app.config["REDIS_CLIENT"] = redis_client

    # Flask session configuration
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = cfg.session_cookie_secure

    # Server-side sessions in redis; otherwise Flask's signed cookie session
    if cfg.session_type == "redis":
        app.config["SESSION_TYPE"] = "redis"
        app.config["SESSION_REDIS"] = redis_client
        app.config["SESSION_KEY_PREFIX"] = "session:"
        Session(app)
    elif cfg.session_type != "cookie":
        raise RuntimeError(f"Unsupported SESSION_TYPE {cfg.session_type!r} (expected cookie or redis)")

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    app.extensions[EXTENSION_KEY] = build_services(
        cfg,
        redis_client,
        account_service=account_service,
        link_service=link_service,
        dispatcher=dispatcher,
    )

    # Register blueprints
    from gatekeeper.api import auth, captcha, errors, health

    app.register_blueprint(captcha.bp)
    app.register_blueprint(auth.bp)
    app.register_blueprint(health.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    # Log startup info
    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    services = app.extensions[EXTENSION_KEY]
    print(f"[gatekeeper] Mode={mode_label}")
    print(f"[gatekeeper] Challenge channels: {', '.join(s.channel for s in services.captcha)}")
    print(f"[gatekeeper] OAuth2 registrations: {', '.join(d.registration_id for d in services.providers) or 'none'}")

    if cfg.demo_mode:
        print("[gatekeeper] WARNING: Demo mode active - SMS codes are logged, not delivered")

    return app
