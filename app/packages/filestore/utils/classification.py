"""分类字段工具：年份/公司编码/总成编码与文件夹命名之间的换算。

顶层文件夹按 ``年份-公司编码-总成编码`` 命名（如 ``2024-AC-XY``），
重名时追加的 ``-1``、``-2`` 后缀在解析时忽略。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from app.packages.filestore.utils.path_utils import top_segment

_YEAR_PATTERN = re.compile(r"^\d{4}$")


@dataclass(frozen=True)
class Classification:
    year: Optional[str] = None
    company_code: Optional[str] = None
    assembly_code: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.year or self.company_code or self.assembly_code)

    def merged_with(self, fallback: "Classification") -> "Classification":
        """逐字段合并：本对象为空的字段取 ``fallback`` 的值。"""
        return Classification(
            year=self.year or fallback.year,
            company_code=self.company_code or fallback.company_code,
            assembly_code=self.assembly_code or fallback.assembly_code,
        )


def _clean(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def build_classification(
    year: Optional[str] = None,
    company_code: Optional[str] = None,
    assembly_code: Optional[str] = None,
) -> Classification:
    return Classification(_clean(year), _clean(company_code), _clean(assembly_code))


def compose_folder_name(classification: Classification) -> Optional[str]:
    """三段齐全时返回 ``year-company-assembly``，只有年份时返回年份，否则返回 ``None``。"""
    year = classification.year
    if year and classification.company_code and classification.assembly_code:
        return f"{year}-{classification.company_code}-{classification.assembly_code}"
    if year and not (classification.company_code or classification.assembly_code):
        return year
    return None


def classification_from_path(rel_path: str) -> Classification:
    """从路径的顶层文件夹名推导分类字段，无法识别时返回空分类。"""
    parts = top_segment(rel_path).split("-")
    if not parts or not _YEAR_PATTERN.match(parts[0]):
        return Classification()
    if len(parts) >= 3 and parts[1] and parts[2]:
        return Classification(year=parts[0], company_code=parts[1], assembly_code=parts[2])
    return Classification(year=parts[0])


def parse_filter_values(raw: Optional[str]) -> tuple[str, ...]:
    """解析逗号分隔的过滤值；空字符串表示通配（返回空元组）。"""
    return tuple(item.strip() for item in (raw or "").split(",") if item.strip())
