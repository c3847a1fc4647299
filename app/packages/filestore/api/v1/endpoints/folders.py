"""目录浏览与文件操作路由：列表、搜索、新建、重命名、删除、上传、重建索引。

物理目录树是唯一的数据来源，路由只负责参数解析与响应序列化，
一致性与加锁规则都在 ``FileService`` 内部处理。
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.packages.filestore.api.v1.schemas.folders import (
    DeleteBody,
    EntryListResponse,
    FolderCreateBody,
    FolderMutationResponse,
    ReindexBody,
    RenameBody,
)
from app.packages.filestore.core.constants import HTTP_STATUS_OK
from app.packages.filestore.core.dependencies import get_db, get_file_service, require_token
from app.packages.filestore.core.exceptions import InvalidInputError
from app.packages.filestore.core.responses import create_response
from app.packages.filestore.core.timezone import format_iso
from app.packages.filestore.services.criteria import EntryCriteria
from app.packages.filestore.services.entries import Entry, is_folder
from app.packages.filestore.services.file_service import FileService
from app.packages.filestore.utils.classification import build_classification

router = APIRouter(prefix="/folder", tags=["folder"], dependencies=[Depends(require_token)])


def serialize_entry(entry: Entry) -> dict[str, Any]:
    """把条目转换为响应结构；文件的元数据字段平铺输出，缺失时为 ``None``。"""
    item: dict[str, Any] = {
        "name": entry.name,
        "type": entry.type,
        "path": entry.path,
        "createdAt": format_iso(entry.created_at),
        "modifiedAt": format_iso(entry.modified_at),
        "size": entry.size,
        "fileName": None,
        "filePath": None,
        "year": None,
        "companyCode": None,
        "assemblyCode": None,
    }
    record = None if is_folder(entry) else entry.metadata
    if record is not None:
        item.update(
            fileName=record.file_name,
            filePath=record.file_path,
            year=record.year,
            companyCode=record.company_code,
            assemblyCode=record.assembly_code,
        )
    return item


@router.get("/list", response_model=EntryListResponse)
def list_items(
    path: Optional[str] = Query(""),
    query: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    company_code: Optional[str] = Query(None, alias="companyCode"),
    assembly_code: Optional[str] = Query(None, alias="assemblyCode"),
    created_from: Optional[str] = Query(None, alias="createdFrom"),
    created_to: Optional[str] = Query(None, alias="createdTo"),
    entry_type: Optional[str] = Query(None, alias="type"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    """列出目录的直接子项，目录不存在时返回 404。"""
    criteria = EntryCriteria.from_params(
        query=query,
        year=year,
        company_code=company_code,
        assembly_code=assembly_code,
        created_from=created_from,
        created_to=created_to,
        entry_type=entry_type,
    )
    entries = service.list_items(db, path=path, criteria=criteria, sort_by=sort_by, sort_order=sort_order)
    return create_response("获取目录内容成功", [serialize_entry(e) for e in entries], HTTP_STATUS_OK)


@router.get("/search", response_model=EntryListResponse)
def search(
    query: Optional[str] = Query(None),
    path: Optional[str] = Query(""),
    year: Optional[str] = Query(None),
    company_code: Optional[str] = Query(None, alias="companyCode"),
    assembly_code: Optional[str] = Query(None, alias="assemblyCode"),
    created_from: Optional[str] = Query(None, alias="createdFrom"),
    created_to: Optional[str] = Query(None, alias="createdTo"),
    entry_type: Optional[str] = Query(None, alias="type"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    """从根目录（或 ``path`` 指定的子树）递归搜索，结果为扁平列表。"""
    criteria = EntryCriteria.from_params(
        query=query,
        year=year,
        company_code=company_code,
        assembly_code=assembly_code,
        created_from=created_from,
        created_to=created_to,
        entry_type=entry_type,
    )
    result = service.search(db, criteria=criteria, path=path, sort_by=sort_by, sort_order=sort_order)
    msg = "搜索成功"
    if result.truncated:
        msg = "搜索成功（结果已截断，仅返回部分匹配项）"
    return create_response(msg, [serialize_entry(e) for e in result.entries], HTTP_STATUS_OK)


@router.post("/create-folder", response_model=FolderMutationResponse)
def create_folder(
    payload: FolderCreateBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    data = service.create_folder(
        db,
        parent_path=payload.path,
        folder_name=payload.folderName,
        classification=build_classification(payload.year, payload.companyCode, payload.assemblyCode),
    )
    return create_response("文件夹创建成功", data, HTTP_STATUS_OK)


@router.post("/rename", response_model=FolderMutationResponse)
def rename(
    payload: RenameBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    data = service.rename(db, path=payload.path, old_name=payload.oldName, new_name=payload.newName)
    return create_response("重命名成功", data, HTTP_STATUS_OK)


@router.post("/delete", response_model=FolderMutationResponse)
def delete(
    payload: DeleteBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    data = service.delete(db, path=payload.path, name=payload.name)
    return create_response("删除成功", data, HTTP_STATUS_OK)


@router.post("/upload", response_model=FolderMutationResponse)
async def upload(
    file: Optional[UploadFile] = File(None),
    path: Optional[str] = Form(""),
    year: Optional[str] = Form(None),
    company_code: Optional[str] = Form(None, alias="companyCode"),
    assembly_code: Optional[str] = Form(None, alias="assemblyCode"),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    """保存上传文件（同名覆盖）；文件写入在线程池中进行，不阻塞事件循环。"""
    if file is None or not file.filename:
        raise InvalidInputError("未上传文件")
    try:
        data = await run_in_threadpool(
            service.upload,
            db,
            path=path,
            stream=file.file,
            original_name=file.filename,
            classification=build_classification(year, company_code, assembly_code),
        )
    finally:
        await file.close()
    return create_response("文件上传成功", data, HTTP_STATUS_OK)


@router.post("/reindex", response_model=FolderMutationResponse)
def reindex(
    payload: Optional[ReindexBody] = None,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    """扫描子树修复元数据索引，仅影响数据库记录，不改动物理文件。"""
    data = service.reindex(db, path=payload.path if payload else "")
    return create_response("索引重建完成", data, HTTP_STATUS_OK)
