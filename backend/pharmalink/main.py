import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .core.api_utils import api_response, error_response
from .core.config import log_fulfillment_config
from .core.exceptions import FulfillmentError
from .core.logging_config import get_logger, setup_logging

# Load environment variables conditionally
# Only load from .env when DATABASE_URL is not already defined by the environment
if not os.getenv("DATABASE_URL"):
    load_dotenv()

logger = get_logger(__name__)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower().strip() in ("1", "true", "yes")


def create_app(orchestrator=None) -> Flask:
    """Application factory.

    Args:
        orchestrator: FulfillmentOrchestrator to serve; built from
            DATABASE_URL with the default settings when omitted.
    """
    from .controllers import appointment_bp, inventory_bp, orders_bp, tracking_bp
    from .core.identity import FlaskIdentityProvider, init_identity
    from .core.limiter_config import limiter, rate_limiting_enabled
    from .services.fulfillment_orchestrator import FulfillmentOrchestrator

    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv("FLASK_SECRET_KEY", "dev-secret-change-me")
    if _env_flag("TESTING"):
        app.config["TESTING"] = True

    # Identity must be bound before the logging hooks read current_user
    init_identity(app)

    setup_logging(
        app,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_to_file=_env_flag("LOG_TO_FILE", "1"),
        use_json_format=_env_flag("LOG_JSON"),
    )
    log_fulfillment_config()

    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("LIMITER_STORAGE_URI", "memory://")
    limiter.init_app(app)
    if not rate_limiting_enabled():
        limiter.enabled = False
        logger.info(
            "Rate limiting disabled for testing", extra={"context": {"test_mode": True}}
        )

    if orchestrator is None:
        orchestrator = FulfillmentOrchestrator(identity=FlaskIdentityProvider())
    app.extensions["pharmalink"] = {
        "orchestrator": orchestrator,
        "session_factory": orchestrator.session_factory,
    }

    app.register_blueprint(orders_bp)
    app.register_blueprint(tracking_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(appointment_bp)

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment_error(error: FulfillmentError):
        return error_response(error)

    @app.errorhandler(404)
    def handle_not_found(_error):
        return api_response(False, "Resource not found", status_code=404)

    @app.errorhandler(405)
    def handle_method_not_allowed(_error):
        return api_response(False, "Method not allowed", status_code=405)

    @app.errorhandler(429)
    def handle_rate_limited(_error):
        return api_response(False, "Too many requests", status_code=429)

    @app.route("/health")
    @limiter.exempt
    def health():
        db = orchestrator.session_factory()
        try:
            db.execute(text("SELECT 1"))
            return api_response(True, "ok", {"database": "up"})
        except SQLAlchemyError as e:
            logger.error(
                "Database connection failed",
                extra={"context": {"error": str(e)}},
                exc_info=True,
            )
            return api_response(False, "degraded", {"database": "down"}, 503)
        finally:
            db.close()

    logger.info(
        "Application created",
        extra={"context": {"blueprints": sorted(app.blueprints)}},
    )
    return app


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    return int(raw) if raw and raw.isdigit() else None


if __name__ == "__main__":
    create_app().run(
        host="0.0.0.0", port=_optional_int("PORT") or 5000, threaded=True
    )
