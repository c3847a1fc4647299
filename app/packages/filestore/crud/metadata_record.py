"""元数据索引 CRUD：按路径、路径前缀与分类字段访问 ``metadata_records``。"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Query, Session

from app.packages.filestore.crud.base import CRUDBase
from app.packages.filestore.models.metadata_record import MetadataRecord

_LIKE_ESCAPE = "\\"


def _escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def _under(prefix: str):
    # SQLite 的 LIKE 对 ASCII 不区分大小写，再用 substr 做一次精确比对
    head = prefix + "/"
    return and_(
        MetadataRecord.file_path.like(_escape_like(prefix) + "/%", escape=_LIKE_ESCAPE),
        func.substr(MetadataRecord.file_path, 1, len(head)) == head,
    )


class CRUDMetadataRecord(CRUDBase[MetadataRecord]):
    def get_by_path(self, db: Session, file_path: str) -> Optional[MetadataRecord]:
        return self.query(db).filter(MetadataRecord.file_path == file_path).first()

    def get_many_by_paths(self, db: Session, paths: Iterable[str]) -> List[MetadataRecord]:
        keys = list(paths)
        if not keys:
            return []
        return self.query(db).filter(MetadataRecord.file_path.in_(keys)).all()

    def _descendants(self, db: Session, prefix: str) -> Query:
        """``prefix`` 之下的所有记录（不含 ``prefix`` 自身）；根目录前缀为空串。"""
        query = self.query(db)
        if not prefix:
            return query
        return query.filter(_under(prefix))

    def list_descendants(self, db: Session, prefix: str) -> List[MetadataRecord]:
        return self._descendants(db, prefix).all()

    def list_subtree(self, db: Session, prefix: str) -> List[MetadataRecord]:
        """``prefix`` 自身及其所有后代记录。"""
        if not prefix:
            return self.query(db).all()
        return self.query(db).filter(or_(MetadataRecord.file_path == prefix, _under(prefix))).all()

    def delete_descendants(self, db: Session, prefix: str) -> int:
        return self._descendants(db, prefix).delete(synchronize_session=False)

    def filter_by_classification(
        self,
        db: Session,
        *,
        years: Sequence[str] = (),
        company_codes: Sequence[str] = (),
        assembly_codes: Sequence[str] = (),
    ) -> List[MetadataRecord]:
        query = self.query(db)
        if years:
            query = query.filter(MetadataRecord.year.in_(list(years)))
        if company_codes:
            query = query.filter(MetadataRecord.company_code.in_(list(company_codes)))
        if assembly_codes:
            query = query.filter(MetadataRecord.assembly_code.in_(list(assembly_codes)))
        return query.order_by(MetadataRecord.file_path.asc()).all()


metadata_record_crud = CRUDMetadataRecord(MetadataRecord)
