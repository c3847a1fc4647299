"""元数据索引服务：维护 ``file_path -> 分类属性`` 的映射。

与物理目录树的协作约定：先完成物理操作，再同步索引（尽力而为）。
索引缺失某条记录不代表条目不存在，列表仍以文件系统为准。
所有写方法都接受 ``auto_commit``，由调用方决定是否把多步同步合并到一个事务里。
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.packages.filestore.core.constants import ENTRY_TYPE_FILE, ENTRY_TYPES
from app.packages.filestore.core.exceptions import InvalidInputError
from app.packages.filestore.crud.metadata_record import metadata_record_crud
from app.packages.filestore.models.metadata_record import MetadataRecord
from app.packages.filestore.utils.classification import Classification
from app.packages.filestore.utils.path_utils import normalize_rel_path, replace_prefix


def _finish(db: Session, auto_commit: bool) -> None:
    if auto_commit:
        db.commit()
    else:
        db.flush()


class MetadataIndex:
    def upsert_on_create(
        self,
        db: Session,
        *,
        file_path: str,
        file_name: str,
        entry_type: str = ENTRY_TYPE_FILE,
        classification: Optional[Classification] = None,
        auto_commit: bool = True,
    ) -> MetadataRecord:
        """按唯一的 ``file_path`` 插入或覆盖记录，重复调用结果一致。"""
        if entry_type not in ENTRY_TYPES:
            raise InvalidInputError(f"不支持的条目类型: {entry_type}")
        key = normalize_rel_path(file_path)
        cls = classification or Classification()
        values = {
            "file_name": file_name,
            "file_path": key,
            "type": entry_type,
            "year": cls.year,
            "company_code": cls.company_code,
            "assembly_code": cls.assembly_code,
        }
        record = metadata_record_crud.get_by_path(db, key)
        if record is None:
            return metadata_record_crud.create(db, values, auto_commit=auto_commit)
        for field, value in values.items():
            setattr(record, field, value)
        return metadata_record_crud.save(db, record, auto_commit=auto_commit)

    def rename_record(
        self,
        db: Session,
        *,
        old_path: str,
        new_path: str,
        new_name: str,
        auto_commit: bool = True,
    ) -> Optional[MetadataRecord]:
        """原地改写 ``old_path`` 对应记录的名称与路径；记录不存在时什么也不做。"""
        record = metadata_record_crud.get_by_path(db, normalize_rel_path(old_path))
        if record is None:
            return None
        record.file_name = new_name
        record.file_path = normalize_rel_path(new_path)
        return metadata_record_crud.save(db, record, auto_commit=auto_commit)

    def rename_descendants(
        self,
        db: Session,
        *,
        old_prefix: str,
        new_prefix: str,
        auto_commit: bool = True,
    ) -> int:
        """文件夹改名后，把所有后代记录的路径前缀从 ``old_prefix`` 改为 ``new_prefix``。"""
        old_key = normalize_rel_path(old_prefix)
        new_key = normalize_rel_path(new_prefix)
        if not old_key or old_key == new_key:
            return 0
        rows = metadata_record_crud.list_descendants(db, old_key)
        for row in rows:
            row.file_path = replace_prefix(row.file_path, old_key, new_key)
            db.add(row)
        _finish(db, auto_commit)
        return len(rows)

    def delete_record(self, db: Session, path: str, *, auto_commit: bool = True) -> bool:
        record = metadata_record_crud.get_by_path(db, normalize_rel_path(path))
        if record is None:
            return False
        metadata_record_crud.hard_delete(db, record, auto_commit=auto_commit)
        return True

    def delete_by_prefix(self, db: Session, prefix: str, *, auto_commit: bool = True) -> int:
        """删除 ``prefix`` 之下的全部后代记录（不含 ``prefix`` 自身）。"""
        key = normalize_rel_path(prefix)
        if not key:
            raise InvalidInputError("不允许按根目录前缀批量删除")
        removed = metadata_record_crud.delete_descendants(db, key)
        _finish(db, auto_commit)
        return removed

    def find_by_path(self, db: Session, path: str) -> Optional[MetadataRecord]:
        return metadata_record_crud.get_by_path(db, normalize_rel_path(path))

    def find_many(self, db: Session, paths: Sequence[str]) -> Dict[str, MetadataRecord]:
        rows = metadata_record_crud.get_many_by_paths(db, [normalize_rel_path(p) for p in paths])
        return {row.file_path: row for row in rows}

    def records_under(self, db: Session, prefix: str) -> Dict[str, MetadataRecord]:
        """``prefix`` 自身及其后代的记录，按路径建索引；根目录返回全部记录。"""
        rows = metadata_record_crud.list_subtree(db, normalize_rel_path(prefix))
        return {row.file_path: row for row in rows}

    def filter(
        self,
        db: Session,
        *,
        years: Sequence[str] = (),
        company_codes: Sequence[str] = (),
        assembly_codes: Sequence[str] = (),
    ) -> List[MetadataRecord]:
        """按分类字段过滤，每个字段的多个取值之间为“或”，字段之间为“且”。"""
        return metadata_record_crud.filter_by_classification(
            db,
            years=years,
            company_codes=company_codes,
            assembly_codes=assembly_codes,
        )


metadata_index = MetadataIndex()
