"""列表与搜索共用的过滤条件与排序规则。

匹配规则：
- 自由文本 ``query`` 不区分大小写；文件夹只比对名称，文件比对物理文件名
  以及元数据中的 ``file_name``/``file_path``；
- 分类过滤（年份/公司编码/总成编码）每项可有多个值，满足任一值即可，空表示通配；
  文件夹按名称包含判断（名称编码了 ``year-company-assembly``），
  文件按元数据字段精确相等判断；
- 没有元数据记录的文件不满足任何非通配的分类过滤，但仍可仅凭文件名匹配 ``query``。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from app.packages.filestore.core.constants import (
    ENTRY_TYPES,
    SORT_BY_DATE,
    SORT_BY_NAME,
    SORT_BY_SIZE,
    SORT_KEYS,
    SORT_ORDER_ASC,
    SORT_ORDER_DESC,
)
from app.packages.filestore.core.exceptions import InvalidInputError
from app.packages.filestore.core.timezone import parse_bound
from app.packages.filestore.services.entries import Entry, FileEntry, FolderEntry, is_folder
from app.packages.filestore.utils.classification import parse_filter_values


@dataclass(frozen=True)
class EntryCriteria:
    query: str = ""
    years: tuple[str, ...] = ()
    company_codes: tuple[str, ...] = ()
    assembly_codes: tuple[str, ...] = ()
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    entry_type: Optional[str] = None

    @classmethod
    def from_params(
        cls,
        *,
        query: Optional[str] = None,
        year: Optional[str] = None,
        company_code: Optional[str] = None,
        assembly_code: Optional[str] = None,
        created_from: Optional[str] = None,
        created_to: Optional[str] = None,
        entry_type: Optional[str] = None,
    ) -> "EntryCriteria":
        """由原始查询参数构造过滤条件，非法的日期或类型抛出 ``InvalidInputError``。"""
        try:
            lower = parse_bound(created_from)
            upper = parse_bound(created_to, end_of_day=True)
        except ValueError as exc:
            raise InvalidInputError(f"日期格式不正确: {exc}") from exc

        kind = (entry_type or "").strip().lower() or None
        if kind is not None and kind not in ENTRY_TYPES:
            raise InvalidInputError(f"不支持的条目类型: {entry_type}")

        return cls(
            query=(query or "").strip(),
            years=parse_filter_values(year),
            company_codes=parse_filter_values(company_code),
            assembly_codes=parse_filter_values(assembly_code),
            created_from=lower,
            created_to=upper,
            entry_type=kind,
        )

    @property
    def has_classification_filters(self) -> bool:
        return bool(self.years or self.company_codes or self.assembly_codes)

    def _matches_common(self, entry: Entry) -> bool:
        if self.entry_type and entry.type != self.entry_type:
            return False
        if self.created_from or self.created_to:
            created = entry.created_at
            if created is None:
                return False
            if self.created_from and created < self.created_from:
                return False
            if self.created_to and created > self.created_to:
                return False
        return True

    def matches_folder(self, entry: FolderEntry) -> bool:
        if not self._matches_common(entry):
            return False
        name = entry.name
        if self.query and self.query.lower() not in name.lower():
            return False
        for values in (self.years, self.company_codes, self.assembly_codes):
            if values and not any(value in name for value in values):
                return False
        return True

    def matches_file(self, entry: FileEntry) -> bool:
        if not self._matches_common(entry):
            return False
        record = entry.metadata
        if self.query:
            needle = self.query.lower()
            haystacks = [entry.name]
            if record is not None:
                haystacks.extend([record.file_name or "", record.file_path or ""])
            if not any(needle in hay.lower() for hay in haystacks):
                return False
        if not self.has_classification_filters:
            return True
        if record is None:
            return False
        return (
            _field_matches(record.year, self.years)
            and _field_matches(record.company_code, self.company_codes)
            and _field_matches(record.assembly_code, self.assembly_codes)
        )

    def matches(self, entry: Entry) -> bool:
        if is_folder(entry):
            return self.matches_folder(entry)
        return self.matches_file(entry)


def _field_matches(value: Optional[str], accepted: Sequence[str]) -> bool:
    if not accepted:
        return True
    return value is not None and value in accepted


def validate_sort(sort_by: Optional[str], sort_order: Optional[str]) -> tuple[str, str]:
    key = (sort_by or SORT_BY_NAME).strip().lower()
    order = (sort_order or SORT_ORDER_ASC).strip().lower()
    if key not in SORT_KEYS:
        raise InvalidInputError(f"不支持的排序字段: {sort_by}")
    if order not in (SORT_ORDER_ASC, SORT_ORDER_DESC):
        raise InvalidInputError(f"不支持的排序方向: {sort_order}")
    return key, order


def _sort_value(entry: Entry, key: str):
    # 缺失字段按空值/零处理
    if key == SORT_BY_DATE:
        return entry.created_at.timestamp() if entry.created_at else 0.0
    if key == SORT_BY_SIZE:
        return entry.size or 0
    return (entry.name or "").lower()


def sort_entries(
    entries: Iterable[Entry],
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> list[Entry]:
    """文件夹始终排在文件之前，组内按 ``sort_by``/``sort_order`` 排序，名称作为次序键。"""
    key, order = validate_sort(sort_by, sort_order)
    reverse = order == SORT_ORDER_DESC
    folders: list[Entry] = []
    files: list[Entry] = []
    for entry in entries:
        (folders if is_folder(entry) else files).append(entry)

    def _key(entry: Entry):
        return (_sort_value(entry, key), entry.name)

    return sorted(folders, key=_key, reverse=reverse) + sorted(files, key=_key, reverse=reverse)
