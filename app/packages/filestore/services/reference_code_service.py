"""参考编码服务：为搜索过滤下拉框提供公司编码与总成编码。"""

from __future__ import annotations

import json
import os
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.packages.filestore.core.constants import HTTP_STATUS_OK, REFERENCE_KINDS
from app.packages.filestore.core.exceptions import ConflictError, InvalidInputError
from app.packages.filestore.core.responses import create_response
from app.packages.filestore.crud.reference_code import reference_code_crud
from app.packages.filestore.models.reference_code import ReferenceCode

_KIND_LABELS = {"company": "公司编码", "assembly": "总成编码"}


class ReferenceCodeService:
    """封装参考编码的查询与新增。"""

    def list_codes(self, db: Session, *, kind: str) -> Dict[str, Any]:
        self._check_kind(kind)
        codes = [self._serialize(item) for item in reference_code_crud.list_by_kind(db, kind)]
        return create_response(f"获取{_KIND_LABELS[kind]}成功", {"total": len(codes), "codes": codes}, HTTP_STATUS_OK)

    def add_code(self, db: Session, *, kind: str, code: str, name: str) -> Dict[str, Any]:
        """新增编码，同类别下编码重复时抛出 ``ConflictError``。"""
        self._check_kind(kind)
        normalized_code = (code or "").strip()
        normalized_name = (name or "").strip()
        if not normalized_code or not normalized_name:
            raise InvalidInputError("编码与名称均为必填项")
        if reference_code_crud.get_by_code(db, kind=kind, code=normalized_code) is not None:
            raise ConflictError(f"{_KIND_LABELS[kind]}已存在")

        created = reference_code_crud.create(db, {"kind": kind, "code": normalized_code, "name": normalized_name})
        return create_response(f"新增{_KIND_LABELS[kind]}成功", self._serialize(created), HTTP_STATUS_OK)

    def seed_from_file(self, db: Session, path: str | os.PathLike[str]) -> int:
        """从 JSON 种子文件导入编码，已存在的编码跳过，返回新增条数。

        文件格式：``{"company": [{"code": "AC", "name": "Acme"}], "assembly": [...]}``。
        调用方负责提交事务。
        """
        try:
            with open(path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, ValueError) as exc:
            raise InvalidInputError(f"无法读取参考编码种子文件: {exc}") from exc
        if not isinstance(payload, dict):
            raise InvalidInputError("参考编码种子文件格式错误")

        inserted = 0
        for kind, items in payload.items():
            self._check_kind(kind)
            for item in items or []:
                code = str(item.get("code") or "").strip()
                name = str(item.get("name") or "").strip()
                if not code or not name:
                    continue
                if reference_code_crud.get_by_code(db, kind=kind, code=code) is not None:
                    continue
                reference_code_crud.create(db, {"kind": kind, "code": code, "name": name}, auto_commit=False)
                inserted += 1
        return inserted

    @staticmethod
    def _check_kind(kind: str) -> None:
        if kind not in REFERENCE_KINDS:
            raise InvalidInputError(f"不支持的编码类别: {kind}")

    @staticmethod
    def _serialize(item: ReferenceCode) -> Dict[str, Any]:
        return {"code": item.code, "name": item.name}


reference_code_service = ReferenceCodeService()
