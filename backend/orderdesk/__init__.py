# backend/orderdesk/__init__.py
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .extensions import store, sessions, throttle
from .validation import ApiError

__version__ = "1.0.0"


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    if app.config["TRUST_PROXY"]:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # Initialize extensions
    store.init_app(app)
    sessions.init_app(app, store)
    throttle.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.validated import validated_bp
    from .routes.pin import pin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(validated_bp)
    app.register_blueprint(pin_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = app.config["CORS_ORIGINS"]
        if origin and ("*" in allowed_origins or origin in allowed_origins):
            # Credentialed requests need the concrete origin, never "*"
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """Render every failure as a JSON envelope {"error": CODE, ...}."""

    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        if error.status >= 500:
            app.logger.error("%s on %s %s: %s", error.code, request.method, request.path, error)
        response = jsonify(error.to_dict())
        response.status_code = error.status
        if isinstance(getattr(error, "retry_after_seconds", None), int):
            response.headers["Retry-After"] = str(error.retry_after_seconds)
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        codes = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
        code = codes.get(error.code, "HTTP_ERROR")
        return jsonify({"error": code, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "INTERNAL_ERROR", "message": "Internal server error"}), 500
