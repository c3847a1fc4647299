"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.filestore.core.config import get_settings
from app.packages.filestore.core.constants import ACCESS_TOKEN_TYPE
from app.packages.filestore.core.security import decode_and_verify_token
from app.packages.filestore.db import session as db_session
from app.packages.filestore.services.directory_store import DirectoryStore
from app.packages.filestore.services.file_service import FileService

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Dict[str, Any]:
    """校验 ``Authorization: Bearer <JWT>``，返回令牌载荷；关闭鉴权时返回空载荷。"""
    if not get_settings().auth_enabled:
        return {}
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少认证信息")
    if credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="认证类型无效")
    payload = decode_and_verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效或已过期")
    return payload


@lru_cache
def get_file_service() -> FileService:
    """进程内共享的文件服务：存储根目录与路径锁对所有请求可见。"""
    settings = get_settings()
    return FileService(
        DirectoryStore(settings.storage_root),
        top_level_subfolders=settings.top_level_subfolders,
        upload_chunk_size=settings.upload_chunk_size,
        search_timeout_seconds=settings.search_timeout_seconds,
        search_max_results=settings.search_max_results,
    )
