"""Path utilities: normalize root-relative paths used as metadata keys.

Rules shared by the directory store, the metadata index and search:
- keys are '/'-joined segments relative to the storage root, no leading or
  trailing slash; the storage root itself is the empty string '';
- backslashes are treated as separators so keys never depend on the host OS;
- '.' segments are dropped and '..' segments are rejected outright.
"""

from __future__ import annotations

from app.packages.filestore.core.exceptions import InvalidInputError

_FORBIDDEN_SEGMENTS = {".", ".."}


def normalize_rel_path(p: str | None) -> str:
    raw = (p or "").replace("\\", "/").strip()
    segments: list[str] = []
    for segment in raw.split("/"):
        if segment in ("", "."):
            continue
        if segment == ".." or "\x00" in segment:
            raise InvalidInputError("非法路径: 不允许越出存储根目录")
        segments.append(segment)
    return "/".join(segments)


def validate_name(name: str | None, label: str = "名称") -> str:
    """校验单个路径片段（文件名或文件夹名），返回去除首尾空白后的值。"""
    value = (name or "").strip()
    if not value:
        raise InvalidInputError(f"{label}不能为空")
    if value in _FORBIDDEN_SEGMENTS or "/" in value or "\\" in value or "\x00" in value:
        raise InvalidInputError(f"{label}不合法: {value}")
    return value


def join_rel_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def top_segment(path: str) -> str:
    return path.split("/", 1)[0] if path else ""


def replace_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    """把 ``path`` 中的目录前缀 ``old_prefix`` 替换为 ``new_prefix``。"""
    if path == old_prefix:
        return new_prefix
    if not path.startswith(old_prefix + "/"):
        return path
    return new_prefix + path[len(old_prefix):]
