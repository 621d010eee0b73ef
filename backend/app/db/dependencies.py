"""FastAPI database dependencies."""

from collections.abc import Iterator

from fastapi import Request
from sqlalchemy.orm import Session


def get_db(request: Request) -> Iterator[Session]:
    """Yield one session per request and close it afterwards."""

    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
