"""测试夹具：为 pytest 提供数据库、存储目录与客户端的共享配置。"""

import os
import shutil
import tempfile
from typing import Generator

_RUNTIME_DIR = tempfile.mkdtemp(prefix="filestore-tests-")
TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"

# 必须在导入应用之前设置，配置对象会被缓存
os.environ["APP_ACTIVE_PACKAGE"] = "filestore"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["STORAGE_PATH"] = os.path.join(_RUNTIME_DIR, "storage")
os.environ["LOG_DIR"] = os.path.join(_RUNTIME_DIR, "log")
os.environ["AUTH_ENABLED"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.main import app
from app.packages.filestore.core.dependencies import get_db, get_file_service
from app.packages.filestore.core.security import create_access_token
from app.packages.filestore.db import session as db_session
from app.packages.filestore.db.init_db import init_db
from app.packages.filestore.models import MetadataRecord, ReferenceCode
from app.packages.filestore.models.base import Base
from app.packages.filestore.services.directory_store import DirectoryStore
from app.packages.filestore.services.file_service import FileService


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    init_db()
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)
    shutil.rmtree(_RUNTIME_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_tables() -> Generator[None, None, None]:
    """每个用例结束后清空元数据与参考编码，保证用例之间互不影响。"""
    yield
    session = db_session.SessionLocal()
    try:
        session.query(MetadataRecord).delete()
        session.query(ReferenceCode).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage_root(tmp_path):
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture()
def store(storage_root) -> DirectoryStore:
    return DirectoryStore(storage_root)


@pytest.fixture()
def file_service(store) -> FileService:
    return FileService(store, search_timeout_seconds=5, search_max_results=1000)


@pytest.fixture()
def client(file_service):
    """构建 FastAPI TestClient，注入测试数据库与绑定临时目录的文件服务。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_service] = lambda: file_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    token = create_access_token({"sub": "tester"})
    return {"Authorization": f"Bearer {token}"}
