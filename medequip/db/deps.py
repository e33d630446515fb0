from collections.abc import Generator

from .session import SessionLocalStore


def get_db() -> Generator:
    db = SessionLocalStore()
    try:
        yield db
    finally:
        db.close()
