"""
Database schema and connection management.

Uses SQLAlchemy for job storage. PostgreSQL is the production target;
SQLite is supported for single-host deployments and tests.
"""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Union

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

PENDING = "PENDING"
PROCESSING = "PROCESSING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"

JOB_STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)
TERMINAL_STATUSES = (COMPLETED, FAILED)


def _new_id() -> str:
    return str(uuid.uuid4())


class QueueJob(Base):
    """A durable unit of background work."""

    __tablename__ = "queue_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    result = Column(JSON, nullable=True)
    status = Column(String(16), nullable=False, default=PENDING, index=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    locked_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)

    def to_dict(self) -> dict:
        """Status view of the job, as returned to API consumers."""
        data = {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "attempts": self.attempts,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
        if self.status == COMPLETED:
            data["result"] = self.result
        elif self.status == FAILED:
            data["error"] = self.error
        return data

    def __repr__(self) -> str:
        return f"<QueueJob {self.id} {self.type} {self.status}>"


class ContentDraft(Base):
    """Draft produced by a content generation job."""

    __tablename__ = "content_drafts"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    seo_title = Column(String, nullable=True)
    seo_description = Column(Text, nullable=True)
    author_id = Column(String, nullable=True)
    status = Column(String(16), nullable=False, default="DRAFT")
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "status": self.status,
            "author_id": self.author_id,
            "tags": self.tags,
            "excerpt": self.excerpt,
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def database_url(target: Union[str, Path]) -> str:
    """Accept a SQLAlchemy URL or a filesystem path to a SQLite file."""
    if isinstance(target, str) and "://" in target:
        return target
    return f"sqlite:///{target}"


def create_db_engine(target: Union[str, Path]) -> Engine:
    """
    Create an engine for a database URL or SQLite path.

    SQLite has no row locks, so every transaction starts with BEGIN
    IMMEDIATE; concurrent claimers then queue on the write lock instead of
    racing from a shared read.
    """
    url = database_url(target)
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    path = url.split(":///", 1)[1] if ":///" in url else ""
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_database(target: Union[str, Path]) -> Engine:
    """
    Initialize database and create tables.

    Args:
        target: SQLAlchemy URL or path to SQLite database file

    Returns:
        The engine the tables were created on
    """
    engine = create_db_engine(target)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    """Session factory whose objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)
