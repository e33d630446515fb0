import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: dict = {"connect_args": {"check_same_thread": False}}
    # In-memory SQLite only lives as long as its single connection.
    if ":memory:" in url or url.rstrip("/").endswith(("sqlite:", "sqlite+pysqlite:")):
        options["poolclass"] = StaticPool
    return options


MEDEQUIP_DB_URL = _require_env("MEDEQUIP_DB_URL")

engine_store = create_engine(
    MEDEQUIP_DB_URL,
    future=True,
    **_engine_options(MEDEQUIP_DB_URL),
)

SessionLocalStore = sessionmaker(
    bind=engine_store,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)
