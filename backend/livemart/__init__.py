# backend/livemart/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate, AUTH_SERVICE_KEY, TOKEN_SERVICE_KEY
from .responses import fail


def create_app(config_overrides: dict | None = None, redis_client=None) -> Flask:
    """
    Application factory.

    config_overrides are applied on top of Config before anything is built
    (tests use it for the in-memory database and low bcrypt rounds).
    redis_client replaces the client built from REDIS_URL.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Token store, token service and auth service live for the app's lifetime
    from .services.token_store import TokenStore
    from .services.token_service import TokenService
    from .services.auth_service import AuthService

    if redis_client is not None:
        store = TokenStore(redis_client)
    else:
        store = TokenStore.from_url(app.config["REDIS_URL"])
    token_service = TokenService.from_config(app.config, store)
    app.extensions[TOKEN_SERVICE_KEY] = token_service
    app.extensions[AUTH_SERVICE_KEY] = AuthService(
        token_service,
        bcrypt_rounds=app.config.get("BCRYPT_ROUNDS", 12),
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.orders import orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.errorhandler(404)
    def not_found(error):
        if request.path.startswith("/api"):
            return fail("API endpoint not found", 404)
        return error

    @app.errorhandler(405)
    def method_not_allowed(error):
        if request.path.startswith("/api"):
            return fail("Method not allowed", 405)
        return error

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error("Unhandled error on %s %s", request.method, request.path)
        return fail("Internal server error", 500)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
