"""参考编码查询的响应模型。"""

from pydantic import BaseModel

from app.packages.filestore.api.v1.schemas.common import ResponseEnvelope


class ReferenceCodeItem(BaseModel):
    code: str
    name: str


class ReferenceCodeList(BaseModel):
    total: int
    codes: list[ReferenceCodeItem]


ReferenceCodeListResponse = ResponseEnvelope[ReferenceCodeList]
