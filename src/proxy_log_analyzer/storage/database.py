import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the SQLAlchemy engine and hands out short-lived sessions"""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        engine_args = {"echo": echo, "future": True}

        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            engine_args["connect_args"] = {"check_same_thread": False}
            if parsed.database in (None, "", ":memory:"):
                # One shared connection, otherwise every session sees an empty database
                engine_args["poolclass"] = StaticPool

        self.engine = create_engine(url, **engine_args)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info(f"Database schema ready ({self.engine.url.render_as_string(hide_password=True)})")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session committed on success and rolled back on error"""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
