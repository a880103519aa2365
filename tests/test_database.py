"""
Tests for database.py - schema and engine setup.
"""

import pytest
from datetime import datetime

from contentqueue.database import (
    COMPLETED,
    FAILED,
    PENDING,
    ContentDraft,
    QueueJob,
    create_db_engine,
    database_url,
    get_session_factory,
    init_database,
)


class TestDatabaseInit:
    """Test database initialization."""

    def test_init_creates_database_file(self, tmp_path):
        db_path = tmp_path / "test.db"
        assert not db_path.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_creates_tables(self, tmp_path):
        db_path = tmp_path / "test.db"
        engine = init_database(db_path)

        with get_session_factory(engine)() as session:
            assert session.query(QueueJob).count() == 0
            assert session.query(ContentDraft).count() == 0
        engine.dispose()

    def test_init_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        assert not db_path.parent.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_database_url(self, tmp_path):
        assert database_url("postgresql://db/queue") == "postgresql://db/queue"
        assert database_url(tmp_path / "q.db") == f"sqlite:///{tmp_path / 'q.db'}"

    def test_sqlite_url_engine(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'url.db'}")
        with engine.begin() as conn:
            conn.exec_driver_sql("CREATE TABLE t (x INTEGER)")
        engine.dispose()
        assert (tmp_path / "url.db").exists()


class TestQueueJobModel:
    """Test the job record itself."""

    @pytest.fixture
    def db_session(self, tmp_path):
        db_path = tmp_path / "test.db"
        engine = init_database(db_path)
        session = get_session_factory(engine)()
        yield session
        session.close()
        engine.dispose()

    def test_defaults(self, db_session):
        before = datetime.now()
        job = QueueJob(type="NOOP", payload={"a": 1})
        db_session.add(job)
        db_session.commit()

        saved = db_session.query(QueueJob).one()
        assert len(saved.id) == 36
        assert saved.status == PENDING
        assert saved.attempts == 0
        assert saved.payload == {"a": 1}
        assert before <= saved.created_at <= datetime.now()

    def test_to_dict_completed(self):
        job = QueueJob(id="j1", type="NOOP", status=COMPLETED, attempts=1, result={"ok": True}, error=None)
        data = job.to_dict()
        assert data["result"] == {"ok": True}
        assert "error" not in data

    def test_to_dict_pending_has_neither(self):
        job = QueueJob(id="j1", type="NOOP", status=PENDING, attempts=0)
        data = job.to_dict()
        assert "result" not in data
        assert "error" not in data
        assert data["processed_at"] is None

    def test_to_dict_failed(self):
        job = QueueJob(id="j1", type="NOOP", status=FAILED, attempts=1, error="boom")
        assert job.to_dict()["error"] == "boom"
