"""参考编码查询路由：为搜索过滤项提供公司编码与总成编码列表。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.filestore.api.v1.schemas.reference_codes import ReferenceCodeListResponse
from app.packages.filestore.core.constants import REFERENCE_KIND_ASSEMBLY, REFERENCE_KIND_COMPANY
from app.packages.filestore.core.dependencies import get_db, require_token
from app.packages.filestore.services.reference_code_service import reference_code_service

router = APIRouter(prefix="/reference-codes", tags=["reference-codes"], dependencies=[Depends(require_token)])


@router.get("/company-codes", response_model=ReferenceCodeListResponse)
def list_company_codes(db: Session = Depends(get_db)):
    return reference_code_service.list_codes(db, kind=REFERENCE_KIND_COMPANY)


@router.get("/assembly-codes", response_model=ReferenceCodeListResponse)
def list_assembly_codes(db: Session = Depends(get_db)):
    return reference_code_service.list_codes(db, kind=REFERENCE_KIND_ASSEMBLY)
