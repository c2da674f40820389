import os
from datetime import timedelta
from sqlalchemy.pool import QueuePool
from urllib.parse import urlparse
import pymysql
pymysql.install_as_MySQLdb()


def _env_int(name, default):
    return int(os.getenv(name, default))


def _env_flag(name, default="False"):
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def engine_options(database_uri):
    """Pool settings, plus PyMySQL socket timeouts when the database is MySQL.

    ``pool_timeout`` only bounds the wait for a free connection. The socket
    timeouts bound each query, so a stalled server raises OperationalError
    (reported as Unavailable) instead of hanging login or validation.
    """
    options = {
        "poolclass": QueuePool,
        "pool_size": 5,
        "max_overflow": 2,
        "pool_timeout": 10,
        "pool_pre_ping": True,
    }
    if database_uri.startswith("mysql"):
        options["connect_args"] = {
            "connect_timeout": _env_int("DB_CONNECT_TIMEOUT_SECONDS", 5),
            "read_timeout": _env_int("DB_READ_TIMEOUT_SECONDS", 10),
            "write_timeout": _env_int("DB_WRITE_TIMEOUT_SECONDS", 10),
        }
    return options


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'change_this_secret_key')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    EXPOSE_ERROR_DETAILS = False

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:8080").split(",")

    # Server-side sessions
    SESSION_LIFETIME = timedelta(days=_env_int("SESSION_LIFETIME_DAYS", 7))
    AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "progress_session")
    SESSION_COOKIE_SECURE = _env_flag("SESSION_COOKIE_SECURE")
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_SWEEP_ENABLED = True
    SESSION_SWEEP_INTERVAL_SECONDS = _env_int("SESSION_SWEEP_INTERVAL_SECONDS", 3600)

    PASSWORD_HASH_ITERATIONS = _env_int("PASSWORD_HASH_ITERATIONS", 600000)

    # Progress updates
    RATE_LIMIT_WINDOW_SECONDS = _env_int("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _env_int("RATE_LIMIT_MAX_REQUESTS", 10)

    # Realtime
    SSE_HEARTBEAT_SECONDS = _env_int("SSE_HEARTBEAT_SECONDS", 30)
    SSE_QUEUE_SIZE = _env_int("SSE_QUEUE_SIZE", 100)

    # Client session cache
    CLIENT_SESSION_INACTIVITY = timedelta(minutes=_env_int("CLIENT_SESSION_INACTIVITY_MINUTES", 30))
    CLIENT_SESSION_SIGNING_KEY = os.getenv("CLIENT_SESSION_SIGNING_KEY", SECRET_KEY)


class DevConfig(Config):
    """Development Configuration"""
    DEBUG = True
    TESTING = False
    EXPOSE_ERROR_DETAILS = True
    SQLALCHEMY_DATABASE_URI = os.getenv('SQLALCHEMY_DATABASE_URI', 'mysql+pymysql://root:@localhost/progress_lens')
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SESSION_SWEEP_ENABLED = False
    SSE_HEARTBEAT_SECONDS = 0
    # Fast hashing keeps the suite quick; production cost comes from the environment
    PASSWORD_HASH_ITERATIONS = 1000


class ProdConfig(Config):
    """Production Configuration (Heroku deployment)"""
    DEBUG = False
    SESSION_COOKIE_SECURE = _env_flag("SESSION_COOKIE_SECURE", "True")

    raw_db_url = os.getenv('DATABASE_URL')

    if raw_db_url:
        if raw_db_url.startswith("mysql://"):
            raw_db_url = raw_db_url.replace("mysql://", "mysql+pymysql://", 1)

        parsed_url = urlparse(raw_db_url)
        SQLALCHEMY_DATABASE_URI = f"{parsed_url.scheme}://{parsed_url.netloc}{parsed_url.path}"
    else:
        SQLALCHEMY_DATABASE_URI = os.getenv('JAWSDB_URL', 'sqlite:///progress_lens.db')

    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)


ENV = os.getenv('FLASK_ENV', 'production').lower()

config_dict = {
    "development": DevConfig,
    "testing": TestConfig,
    "production": ProdConfig
}

CurrentConfig = config_dict.get(ENV, ProdConfig)
