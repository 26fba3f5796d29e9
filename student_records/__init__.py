"""Flask application factory."""

import logging
import os
import secrets
from datetime import date, timedelta
from pathlib import Path

import redis
from dotenv import load_dotenv
from flask import Flask
from flask_session import Session

from .extensions import db
from .services.student_store import StudentStore

logger = logging.getLogger(__name__)


def _resolve_secret_key() -> str:
    """Return a secret key for Flask sessions.

    In production we expect ``FLASK_SECRET_KEY`` (or the legacy ``SECRET_KEY``)
    to be configured. When it is missing, such as during local testing, a
    temporary key is generated so the app can still boot.
    """

    for name in ("FLASK_SECRET_KEY", "SECRET_KEY"):
        value = os.environ.get(name)
        if value:
            return value

    return secrets.token_hex(32)


def _bool_from_env(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _configure_logging() -> None:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s  %(levelname)s  %(name)s  %(message)s")
    logging.getLogger("student_records").setLevel(level)


def _resolve_database_uri(app: Flask, is_production: bool) -> str:
    """Return the database URI backing the session table."""

    database_uri = os.environ.get("SUPABASE_DB_POOL_URL")
    if not database_uri:
        if is_production:
            raise RuntimeError(
                "SUPABASE_DB_POOL_URL is required in production to persist sessions."
            )
        default_sqlite_path = Path(app.instance_path) / "sessions.db"
        default_sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        database_uri = os.environ.get(
            "LOCAL_DATABASE_URI",
            f"sqlite:///{default_sqlite_path}",
        )

    if database_uri.startswith("sqlite:///"):
        sqlite_path = database_uri.replace("sqlite:///", "", 1)
        Path(sqlite_path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    return database_uri


def format_birth_date(value) -> str:
    """Render a birth date as ``dd/mm/yyyy``."""

    if isinstance(value, str):
        value = date.fromisoformat(value.split("T", 1)[0])
    return value.strftime("%d/%m/%Y")


def create_app() -> Flask:
    """Configure and return the Flask application."""

    load_dotenv()
    _configure_logging()

    app = Flask(__name__)

    # The store discovers its own credentials so the app runs without a
    # Supabase project configured.
    app.student_store = StudentStore()
    logger.info("Student store backend: %s", app.student_store.backend)

    app.config["SECRET_KEY"] = _resolve_secret_key()

    flask_env = os.environ.get("FLASK_ENV", "").lower()
    is_production = flask_env in {"production", "prod"}

    same_site_default = "Lax"
    same_site_env = os.environ.get("SESSION_COOKIE_SAMESITE")
    if same_site_env and same_site_env.lower() == "none":
        same_site_default = "None"

    app.config.update(
        SESSION_PERMANENT=True,
        PERMANENT_SESSION_LIFETIME=timedelta(
            days=int(os.environ.get("SESSION_LIFETIME_DAYS", "14"))
        ),
        SESSION_COOKIE_SECURE=_bool_from_env("SESSION_COOKIE_SECURE", is_production),
        SESSION_COOKIE_SAMESITE=os.environ.get("SESSION_COOKIE_SAMESITE", same_site_default),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_NAME=os.environ.get("SESSION_COOKIE_NAME", "student_records_session"),
        SESSION_COOKIE_DOMAIN=os.environ.get("SESSION_COOKIE_DOMAIN"),
    )

    redis_session_client = None
    redis_url = os.environ.get("UPSTASH_REDIS_URL")
    if redis_url:
        try:
            redis_session_client = redis.from_url(redis_url)
        except Exception:  # pragma: no cover - network dependent
            logger.warning(
                "Redis session initialisation failed; falling back to SQL sessions",
                exc_info=True,
            )

    if redis_session_client is not None:
        app.config["SESSION_TYPE"] = "redis"
        app.config["SESSION_REDIS"] = redis_session_client
    else:
        app.config["SESSION_TYPE"] = "sqlalchemy"
        app.config["SESSION_SQLALCHEMY"] = db
        app.config["SESSION_SQLALCHEMY_TABLE"] = os.environ.get("SESSION_TABLE", "sessions")
        app.config["SQLALCHEMY_DATABASE_URI"] = _resolve_database_uri(app, is_production)
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"pool_pre_ping": True}
        app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

        db.init_app(app)

        # Session(app) declares the table on the shared metadata; drop any
        # declaration left by a previous app instance first.
        table_name = app.config["SESSION_SQLALCHEMY_TABLE"]
        if table_name in db.metadata.tables:
            db.metadata.remove(db.metadata.tables[table_name])

    Session(app)

    if app.config["SESSION_TYPE"] == "sqlalchemy" and not is_production:
        with app.app_context():
            db.create_all()

    app.add_template_filter(format_birth_date, "birth_date")

    from .routes import main_bp

    app.register_blueprint(main_bp)

    return app
