"""参考编码 CRUD。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from app.packages.filestore.crud.base import CRUDBase
from app.packages.filestore.models.reference_code import ReferenceCode


class CRUDReferenceCode(CRUDBase[ReferenceCode]):
    def get_by_code(self, db: Session, *, kind: str, code: str) -> Optional[ReferenceCode]:
        return (
            self.query(db)
            .filter(ReferenceCode.kind == kind)
            .filter(ReferenceCode.code == code)
            .first()
        )

    def list_by_kind(self, db: Session, kind: str) -> List[ReferenceCode]:
        return (
            self.query(db)
            .filter(ReferenceCode.kind == kind)
            .order_by(ReferenceCode.code.asc())
            .all()
        )


reference_code_crud = CRUDReferenceCode(ReferenceCode)
