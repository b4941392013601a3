# tests/conftest.py
# 先设环境变量，再导入 gridfactory_db（engine 在导入时绑定 DATABASE_URL）
import os, time
ts = int(time.time() * 1000)
DB_FILE = f"pytest_gridfactory_{ts}.db"
os.environ["DATABASE_URL"] = f"sqlite:///./{DB_FILE}"
os.environ["LOG_TO_FILE"] = "false"   # 测试别落盘，减少噪音
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["GF_DB_BASE_URL"] = "https://grid.example.org/db"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from sqlalchemy import text

from gridfactory_db.infra.db import engine, init_db, SessionLocal

TABLES = ("jobDefinition", "jobHistory", "nodeInformation")


@pytest.fixture(scope="session", autouse=True)
def _schema():
    init_db()
    yield
    engine.dispose()
    if os.path.exists(DB_FILE):
        os.remove(DB_FILE)


@pytest.fixture
def clean_db():
    with engine.begin() as conn:
        for t in TABLES:
            conn.execute(text(f'DELETE FROM "{t}"'))
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def insert_row():
    def _insert(table: str, **values):
        cols = ", ".join(f'"{c}"' for c in values)
        params = ", ".join(f":{c}" for c in values)
        with engine.begin() as conn:
            conn.execute(text(f'INSERT INTO "{table}" ({cols}) VALUES ({params})'), values)
    return _insert


@pytest.fixture
def fetch_row():
    def _fetch(table: str, identifier: str):
        with engine.begin() as conn:
            return conn.execute(
                text(f'SELECT * FROM "{table}" WHERE identifier = :id'), {"id": identifier}
            ).mappings().first()
    return _fetch
