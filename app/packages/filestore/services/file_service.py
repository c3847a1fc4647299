"""文件操作服务：协调目录存储与元数据索引，对外提供列表/新建/重命名/删除/上传/搜索/重建索引。

一致性约定：
- 先执行物理操作，再同步元数据索引；
- “物理操作 + 索引同步”在同一把路径锁内完成：目标路径取写锁、祖先路径取读锁，
  因此对某个目录的删除或重命名与其子树内的新建、上传互斥；
- 索引同步失败时回滚数据库事务并记录警告，物理操作结果保留，
  响应中的 ``indexSynced`` 会如实标记为 ``False``，可随后调用 ``reindex`` 修复。
"""

from __future__ import annotations

from typing import Any, BinaryIO, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.filestore.core.constants import (
    DEFAULT_TOP_LEVEL_SUBFOLDERS,
    ENTRY_TYPE_FILE,
    ENTRY_TYPE_FOLDER,
)
from app.packages.filestore.core.exceptions import InvalidInputError, IOFailureError
from app.packages.filestore.core.locks import PathLockRegistry
from app.packages.filestore.core.logger import logger
from app.packages.filestore.services.criteria import EntryCriteria, sort_entries, validate_sort
from app.packages.filestore.services.directory_store import DEFAULT_CHUNK_SIZE, DirectoryStore, upload_name
from app.packages.filestore.services.entries import Entry, is_folder
from app.packages.filestore.services.metadata_index import MetadataIndex, metadata_index
from app.packages.filestore.services.search_service import SearchResult, SearchService
from app.packages.filestore.utils.classification import (
    Classification,
    classification_from_path,
    compose_folder_name,
)
from app.packages.filestore.utils.path_utils import join_rel_path, normalize_rel_path


class FileService:
    def __init__(
        self,
        store: DirectoryStore,
        *,
        index: Optional[MetadataIndex] = None,
        locks: Optional[PathLockRegistry] = None,
        top_level_subfolders: Sequence[str] = DEFAULT_TOP_LEVEL_SUBFOLDERS,
        upload_chunk_size: int = DEFAULT_CHUNK_SIZE,
        search_timeout_seconds: float = 30.0,
        search_max_results: int = 5000,
    ) -> None:
        self.store = store
        self.index = index or metadata_index
        self.locks = locks or PathLockRegistry()
        self.top_level_subfolders = tuple(top_level_subfolders)
        self.upload_chunk_size = upload_chunk_size
        self.searcher = SearchService(
            store,
            index=self.index,
            timeout_seconds=search_timeout_seconds,
            max_results=search_max_results,
        )

    # ----------------------------
    # 索引同步
    # ----------------------------
    def _reconcile(self, db: Session, op: str, target: str, apply: Callable[[], Any]) -> bool:
        """在一个事务内执行索引同步；失败时回滚并返回 ``False``。"""
        try:
            apply()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("folder.%s index sync failed path=%s", op, target, exc_info=True)
            return False
        return True

    # ----------------------------
    # 查询
    # ----------------------------
    def list_items(
        self,
        db: Session,
        *,
        path: Optional[str] = "",
        criteria: Optional[EntryCriteria] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> List[Entry]:
        """列出目录的直接子项，文件附带元数据（没有记录时为 ``None``）。"""
        validate_sort(sort_by, sort_order)
        rel = normalize_rel_path(path)
        entries = self.store.list(rel)
        records = self.index.find_many(db, [e.path for e in entries if not is_folder(e)])
        enriched = [e if is_folder(e) else e.with_metadata(records.get(e.path)) for e in entries]
        if criteria is not None:
            enriched = [e for e in enriched if criteria.matches(e)]
        return sort_entries(enriched, sort_by, sort_order)

    def search(
        self,
        db: Session,
        *,
        criteria: EntryCriteria,
        path: Optional[str] = "",
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_results: Optional[int] = None,
    ) -> SearchResult:
        return self.searcher.search(
            db,
            criteria=criteria,
            path=path,
            sort_by=sort_by,
            sort_order=sort_order,
            timeout_seconds=timeout_seconds,
            max_results=max_results,
        )

    # ----------------------------
    # 目录与文件变更
    # ----------------------------
    def create_folder(
        self,
        db: Session,
        *,
        parent_path: Optional[str],
        folder_name: Optional[str],
        classification: Optional[Classification] = None,
    ) -> Dict[str, Any]:
        """新建文件夹；在根目录下创建时同时建立固定的子文件夹。

        未提供 ``folder_name`` 时，使用分类字段组合出 ``year-company-assembly`` 作为名称。
        """
        parent = normalize_rel_path(parent_path)
        cls = classification or Classification()
        requested = (folder_name or "").strip() or compose_folder_name(cls)
        if not requested:
            raise InvalidInputError("文件夹名称不能为空")

        subfolders = self.top_level_subfolders if parent == "" else ()
        # 最终名称在创建后才确定：先持有父目录链的读锁，再对新路径加写锁，两步之间不释放
        with self.locks.hold(shared=(parent,)):
            final_name = self.store.create_folder(parent, requested, subfolders=subfolders)
            new_path = join_rel_path(parent, final_name)
            logger.info("folder.create parent=%s requested=%s final=%s", parent or "/", requested, final_name)

            folder_cls = cls.merged_with(classification_from_path(new_path))
            with self.locks.hold(new_path):
                # 新路径的写锁到手前，并发的删除/重命名可能已经移走了它
                if not self.store.is_dir(new_path):
                    logger.warning("folder.create path=%s gone before indexing", new_path)
                    synced = True
                else:
                    synced = self._reconcile(
                        db,
                        "create",
                        new_path,
                        lambda: self.index.upsert_on_create(
                            db,
                            file_path=new_path,
                            file_name=final_name,
                            entry_type=ENTRY_TYPE_FOLDER,
                            classification=folder_cls,
                            auto_commit=False,
                        ),
                    )
        return {
            "folderName": final_name,
            "path": new_path,
            "subfolders": list(subfolders),
            "indexSynced": synced,
        }

    def rename(self, db: Session, *, path: Optional[str], old_name: str, new_name: str) -> Dict[str, Any]:
        """重命名条目，并把索引中旧路径（及其后代）的记录改写为新路径。"""
        parent = normalize_rel_path(path)
        old_path = join_rel_path(parent, (old_name or "").strip())
        new_path = join_rel_path(parent, (new_name or "").strip())
        with self.locks.hold(old_path, new_path):
            old_path, new_path = self.store.rename(parent, old_name, new_name)
            logger.info("folder.rename %s -> %s", old_path, new_path)
            if old_path == new_path:
                return {"oldPath": old_path, "newPath": new_path, "indexSynced": True}

            def _apply() -> None:
                # 新路径在物理上原本不存在，残留的旧记录一律清掉
                self.index.delete_record(db, new_path, auto_commit=False)
                self.index.delete_by_prefix(db, new_path, auto_commit=False)
                self.index.rename_record(
                    db,
                    old_path=old_path,
                    new_path=new_path,
                    new_name=new_path.rsplit("/", 1)[-1],
                    auto_commit=False,
                )
                self.index.rename_descendants(db, old_prefix=old_path, new_prefix=new_path, auto_commit=False)

            synced = self._reconcile(db, "rename", old_path, _apply)
        return {"oldPath": old_path, "newPath": new_path, "indexSynced": synced}

    def delete(self, db: Session, *, path: Optional[str], name: str) -> Dict[str, Any]:
        """递归删除条目，并删除其自身与全部后代的索引记录。"""
        parent = normalize_rel_path(path)
        target = join_rel_path(parent, (name or "").strip())
        with self.locks.hold(target):
            removed_path, was_folder = self.store.delete(parent, name)
            logger.info("folder.delete path=%s folder=%s", removed_path, was_folder)
            counter = {"records": 0}

            def _apply() -> None:
                counter["records"] += int(self.index.delete_record(db, removed_path, auto_commit=False))
                counter["records"] += self.index.delete_by_prefix(db, removed_path, auto_commit=False)

            synced = self._reconcile(db, "delete", removed_path, _apply)
        return {"path": removed_path, "removedRecords": counter["records"] if synced else 0, "indexSynced": synced}

    def upload(
        self,
        db: Session,
        *,
        path: Optional[str],
        stream: BinaryIO,
        original_name: Optional[str],
        classification: Optional[Classification] = None,
    ) -> Dict[str, Any]:
        """以原始文件名保存上传内容（同名覆盖），并写入文件类型的索引记录。

        未显式提供分类字段时，从目标路径的顶层文件夹名推导。
        """
        if not (original_name or "").strip():
            raise InvalidInputError("未上传文件")
        parent = normalize_rel_path(path)
        target = join_rel_path(parent, upload_name(original_name))
        # 写入与索引同步在同一把锁内完成，祖先目录的删除或重命名会等待上传结束
        with self.locks.hold(target):
            stored_name, file_path = self.store.write_file(
                parent,
                original_name or "",
                stream,
                chunk_size=self.upload_chunk_size,
            )
            logger.info("folder.upload path=%s", file_path)

            file_cls = (classification or Classification()).merged_with(classification_from_path(file_path))
            synced = self._reconcile(
                db,
                "upload",
                file_path,
                lambda: self.index.upsert_on_create(
                    db,
                    file_path=file_path,
                    file_name=stored_name,
                    entry_type=ENTRY_TYPE_FILE,
                    classification=file_cls,
                    auto_commit=False,
                ),
            )
        return {"fileName": stored_name, "currentPath": parent, "path": file_path, "indexSynced": synced}

    # ----------------------------
    # 修复
    # ----------------------------
    def reindex(self, db: Session, *, path: Optional[str] = "") -> Dict[str, Any]:
        """扫描子树并修复索引：补齐缺失记录，删除物理上已不存在的记录。

        已有记录的字段保持不变；新补的记录按路径推导分类字段。
        """
        start = normalize_rel_path(path)
        existing = self.index.records_under(db, start)
        seen: set[str] = set()
        inserted = 0
        skipped: list[str] = []

        def _on_error(rel: str, exc: OSError) -> None:
            skipped.append(rel)

        for entry in self.store.walk(start, on_error=_on_error):
            seen.add(entry.path)
            if entry.path in existing:
                continue
            self.index.upsert_on_create(
                db,
                file_path=entry.path,
                file_name=entry.name,
                entry_type=entry.type,
                classification=classification_from_path(entry.path),
                auto_commit=False,
            )
            inserted += 1

        # 遍历不产出起点自身，子树重建时单独补上起点目录的记录
        if start and start not in existing:
            self.index.upsert_on_create(
                db,
                file_path=start,
                file_name=start.rsplit("/", 1)[-1],
                entry_type=ENTRY_TYPE_FOLDER,
                classification=classification_from_path(start),
                auto_commit=False,
            )
            seen.add(start)
            inserted += 1

        removed = 0
        for record_path, record in existing.items():
            if record_path == start or record_path in seen:
                continue
            # 不可读目录下的记录无法确认是否仍存在，保留
            if any(record_path == prefix or record_path.startswith(prefix + "/") for prefix in skipped):
                continue
            db.delete(record)
            removed += 1

        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("folder.reindex commit failed path=%s", start or "/")
            raise IOFailureError("重建索引失败") from exc
        logger.info(
            "folder.reindex path=%s scanned=%s inserted=%s removed=%s skipped=%s",
            start or "/",
            len(seen),
            inserted,
            removed,
            len(skipped),
        )
        return {"scanned": len(seen), "inserted": inserted, "removed": removed, "skipped": skipped}
