"""目录浏览与文件操作的请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.filestore.api.v1.schemas.common import ResponseEnvelope


class EntryItem(BaseModel):
    """列表与搜索返回的条目，元数据字段与物理属性平铺在一起。"""

    name: str
    type: str
    path: str
    createdAt: Optional[str] = None
    modifiedAt: Optional[str] = None
    size: int = 0
    fileName: Optional[str] = None
    filePath: Optional[str] = None
    year: Optional[str] = None
    companyCode: Optional[str] = None
    assemblyCode: Optional[str] = None


class FolderCreateBody(BaseModel):
    folderName: Optional[str] = None
    path: Optional[str] = ""
    year: Optional[str] = None
    companyCode: Optional[str] = None
    assemblyCode: Optional[str] = None


class RenameBody(BaseModel):
    oldName: str = Field(..., min_length=1)
    newName: str = Field(..., min_length=1)
    path: Optional[str] = ""


class DeleteBody(BaseModel):
    name: str = Field(..., min_length=1)
    path: Optional[str] = ""


class ReindexBody(BaseModel):
    path: Optional[str] = ""


EntryListResponse = ResponseEnvelope[list[EntryItem]]
FolderMutationResponse = ResponseEnvelope[dict[str, Any]]
