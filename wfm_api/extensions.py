# wfm_api/extensions.py
import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# server databases only; sqlite keeps the driver's own pool
SERVER_ENGINE_OPTIONS = {
    "pool_pre_ping": True,
    "pool_recycle": 270,
    "pool_size": 5,
    "max_overflow": 2,
    "pool_timeout": 30,
}


def database_url(raw: str) -> str:
    """Pin postgres URLs to the psycopg 3 driver; anything else passes through."""
    if not raw:
        return raw
    for prefix in ("postgres://", "postgresql://"):
        if raw.startswith(prefix):
            return "postgresql+psycopg://" + raw[len(prefix):]
    return raw


def init_db(app):
    url = database_url(os.getenv("DATABASE_URL") or app.config.get("SQLALCHEMY_DATABASE_URI") or "")
    app.config["SQLALCHEMY_DATABASE_URI"] = url
    if not url.startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", dict(SERVER_ENGINE_OPTIONS))
    db.init_app(app)
