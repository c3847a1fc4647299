"""递归搜索：从根目录（或指定子树）遍历目录存储，结合元数据索引过滤条目。

- 文件夹：名称参与 ``query`` 与分类过滤，命中即收录；无论是否命中都继续向下遍历；
- 文件：按归一化路径取元数据记录后再判断；
- 所有层级的命中结果汇总成一个扁平列表，文件夹在前，再按指定字段排序；
- 单个目录不可读只记录日志并跳过；超时或达到结果上限时返回已收集的部分结果。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.packages.filestore.core.logger import logger
from app.packages.filestore.services.criteria import EntryCriteria, sort_entries, validate_sort
from app.packages.filestore.services.directory_store import DirectoryStore
from app.packages.filestore.services.entries import Entry, is_folder
from app.packages.filestore.services.metadata_index import MetadataIndex, metadata_index
from app.packages.filestore.utils.path_utils import normalize_rel_path


@dataclass
class SearchResult:
    entries: list[Entry] = field(default_factory=list)
    truncated: bool = False
    skipped: list[str] = field(default_factory=list)


class SearchService:
    def __init__(
        self,
        store: DirectoryStore,
        *,
        index: Optional[MetadataIndex] = None,
        timeout_seconds: float = 30.0,
        max_results: int = 5000,
    ) -> None:
        self.store = store
        self.index = index or metadata_index
        self.timeout_seconds = timeout_seconds
        self.max_results = max_results

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
        validate_sort(sort_by, sort_order)
        start = normalize_rel_path(path)
        budget = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        cap = self.max_results if max_results is None else max_results
        deadline = time.monotonic() + budget

        result = SearchResult()
        # 一次取出子树内的全部记录，避免逐个文件查询数据库
        records = self.index.records_under(db, start)

        def _on_error(rel: str, exc: OSError) -> None:
            result.skipped.append(rel)

        walker = self.store.walk(start, on_error=_on_error)
        try:
            for entry in walker:
                if time.monotonic() > deadline:
                    logger.warning("search.timeout path=%s budget=%ss collected=%s", start, budget, len(result.entries))
                    result.truncated = True
                    break
                if not is_folder(entry):
                    entry = entry.with_metadata(records.get(entry.path))
                if criteria.matches(entry):
                    result.entries.append(entry)
                    if len(result.entries) >= cap:
                        logger.warning("search.capped path=%s cap=%s", start, cap)
                        result.truncated = True
                        break
        finally:
            walker.close()

        result.entries = sort_entries(result.entries, sort_by, sort_order)
        logger.info(
            "search.done path=%s query=%r matches=%s skipped=%s truncated=%s",
            start,
            criteria.query,
            len(result.entries),
            len(result.skipped),
            result.truncated,
        )
        return result
