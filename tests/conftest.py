"""
Pytest configuration and fixtures for payment-message-persistence tests

This module provides shared fixtures for unit and integration tests.
"""
import os
from contextlib import contextmanager
from typing import Generator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from message_persistence.warehouse.connection import DatabaseConnectionPool


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

def _connect_kwargs(postgres: PostgresContainer) -> dict:
    return {
        "host": postgres.get_container_host_ip(),
        "port": int(postgres.get_exposed_port(5432)),
        "dbname": postgres.dbname,
        "user": postgres.username,
        "password": postgres.password,
    }


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        PostgresContainer instance with initialized database
    """
    from docker.errors import DockerException

    try:
        container = PostgresContainer(
            image="postgres:16.2-alpine",
            username="test_pipeline",
            password="test_password",
            dbname="test_datawarehouse"
        )
        container.start()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        # Run init script
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )

        with open(init_sql_path, 'r') as f:
            init_sql = f.read()

        with psycopg.connect(**_connect_kwargs(container)) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Provide an open connection pool against the test container

    Args:
        postgres_container: PostgreSQL container fixture

    Yields:
        Open DatabaseConnectionPool
    """
    params = _connect_kwargs(postgres_container)
    pool = DatabaseConnectionPool(
        host=params["host"],
        port=params["port"],
        database=params["dbname"],
        user=params["user"],
        password=params["password"],
        min_size=1,
        max_size=8,
        timeout=10.0,
    )
    pool.open()
    try:
        yield pool
    finally:
        pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Provide a clean database by truncating all tables before each test

    Args:
        db_pool: Connection pool fixture

    Yields:
        DatabaseConnectionPool against empty tables
    """
    with db_pool.transaction() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "TRUNCATE TABLE received_message, cdm_message, message_errors RESTART IDENTITY"
            )

    yield db_pool


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)


# =======================
# PAYLOAD FIXTURES
# =======================

@pytest.fixture
def pacs008_payload() -> str:
    """A CDM payload carrying every extractable field"""
    return (
        '{"messageId": "MSG-20251021-0001", '
        '"creationDateTime": "2025-10-21T14:30:00Z", '
        '"numberOfTransactions": 3, '
        '"processingStatus": "VALIDATED", '
        '"transactions": [{"amount": "100.00", "currency": "EUR"}]}'
    )


# =======================
# IN-MEMORY DATABASE FAKES
# =======================

class FakeCursor:
    """Cursor returning scripted rows; records every statement it runs"""

    def __init__(self, pool: "FakePool"):
        self.pool = pool
        self.rowcount = 0
        self._rows: list = []
        self._result_sets: list = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def execute(self, query, params=None):
        self.pool.executed.append((query, params))
        if self.pool.error is not None:
            raise self.pool.error
        self._rows = list(self.pool.results.pop(0)) if self.pool.results else []
        self.rowcount = len(self._rows)

    def executemany(self, query, params_seq, returning=False):
        params_seq = list(params_seq)
        self.pool.executed_many.append((query, params_seq))
        if self.pool.error is not None:
            raise self.pool.error
        self._result_sets = [[{"id": self.pool.next_id()}] for _ in params_seq]
        self._rows = self._result_sets.pop(0) if self._result_sets else []
        self.rowcount = len(params_seq)

    def nextset(self):
        if not self._result_sets:
            return None
        self._rows = self._result_sets.pop(0)
        return True

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows


class FakeConnection:
    def __init__(self, pool: "FakePool"):
        self.pool = pool

    def cursor(self):
        return FakeCursor(self.pool)


class FakePool:
    """
    Stand-in for DatabaseConnectionPool in unit tests

    Attributes:
        results: Queue of row lists, one consumed per execute()
        error: Exception raised by every statement when set
    """

    def __init__(self, results=None, error=None):
        self.results = list(results or [])
        self.error = error
        self.executed: list = []
        self.executed_many: list = []
        self.commits = 0
        self.rollbacks = 0
        self._last_id = 0

    def next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    @contextmanager
    def transaction(self):
        try:
            yield FakeConnection(self)
        except Exception:
            self.rollbacks += 1
            raise
        self.commits += 1

    def execute_query(self, query, params=None):
        with FakeConnection(self).cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()


@pytest.fixture
def fake_pool() -> FakePool:
    """In-memory pool with an empty result queue"""
    return FakePool()
