from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from loguru import logger

from craftguide.core.config import DATABASE_URL, SQL_DEBUG

# --- Base (single source of truth) ---
Base = declarative_base()


def build_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    built = create_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args=connect_args,
        **kwargs,
    )
    if SQL_DEBUG:
        event.listen(built, "before_cursor_execute", _log_statement)
    return built


def build_session_factory(bound: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bound,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


# --- SQL query logging ---
def _log_statement(conn, cursor, statement, parameters, context, executemany):
    logger.debug(f"SQL: {statement} | params={parameters}")


# --- Engine / session factory ---
engine = build_engine()
SessionLocal = build_session_factory(engine)
