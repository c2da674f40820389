import os
import logging
from dotenv import load_dotenv
load_dotenv()
from flask import Flask, jsonify
from flask_cors import CORS
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException
from config import config_dict, ProdConfig
from models import db
from classes.auth_service import AuthService
from classes.broadcaster import ProgressBroadcaster
from classes.errors import ProgressLensError, Unknown
from classes.progress_manager import ProgressManager
from classes.rate_limiter import SlidingWindowRateLimiter
from classes.session_sweeper import SessionSweeper
from commands import register_commands
from routes.authentication import auth_bp
from routes.health import health_bp
from routes.progress import progress_bp
from routes.sse import sse_bp
from routes.users import users_bp
from routes.videos import videos_bp

logger = logging.getLogger(__name__)

migrate = Migrate()


def configure_logging(app):
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def init_services(app):
    """Build the per-application service objects and expose them via ``app.extensions``."""
    config = app.config
    auth_service = AuthService(
        session_lifetime=config["SESSION_LIFETIME"],
        password_hash_iterations=config["PASSWORD_HASH_ITERATIONS"],
    )
    broadcaster = ProgressBroadcaster(
        heartbeat_interval=config["SSE_HEARTBEAT_SECONDS"],
        queue_size=config["SSE_QUEUE_SIZE"],
    )
    rate_limiter = SlidingWindowRateLimiter(
        max_requests=config["RATE_LIMIT_MAX_REQUESTS"],
        window_seconds=config["RATE_LIMIT_WINDOW_SECONDS"],
    )

    app.extensions["auth_service"] = auth_service
    app.extensions["progress_broadcaster"] = broadcaster
    app.extensions["rate_limiter"] = rate_limiter
    app.extensions["progress_manager"] = ProgressManager(auth_service, broadcaster, rate_limiter)
    app.extensions["session_sweeper"] = SessionSweeper(
        app, auth_service, config["SESSION_SWEEP_INTERVAL_SECONDS"]
    )


def register_error_handlers(app):
    @app.errorhandler(ProgressLensError)
    def handle_progress_lens_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.kind, error.detail)
        return jsonify(error.to_dict(include_detail=app.config["EXPOSE_ERROR_DETAILS"])), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.description, "code": error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception("Unhandled error")
        body = Unknown(str(error)).to_dict(include_detail=app.config["EXPOSE_ERROR_DETAILS"])
        return jsonify(body), 500


def create_app(config_name=None):
    app = Flask(__name__)

    env = config_name or os.environ.get("FLASK_ENV", "production")
    app.config.from_object(config_dict.get(env, ProdConfig))
    configure_logging(app)

    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)

    db.init_app(app)
    migrate.init_app(app, db)
    init_services(app)

    @app.route('/')
    def home():
        return "Welcome to the Progress Lens API!"

    app.register_blueprint(auth_bp, url_prefix='/api')
    app.register_blueprint(progress_bp, url_prefix='/api/progress')
    app.register_blueprint(sse_bp, url_prefix='/api/sse')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(videos_bp, url_prefix='/api/videos')
    app.register_blueprint(health_bp, url_prefix='/api/health')

    register_error_handlers(app)
    register_commands(app)

    if app.config["SESSION_SWEEP_ENABLED"]:
        app.extensions["session_sweeper"].start()

    logger.info("Environment: %s", env)
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config['DEBUG'], threaded=True)
