"""目录条目的显式类型：文件夹条目与携带可选元数据的文件条目。

条目在每次列表/搜索时根据文件系统现算，不做缓存。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Union

from app.packages.filestore.core.constants import ENTRY_TYPE_FILE, ENTRY_TYPE_FOLDER
from app.packages.filestore.models.metadata_record import MetadataRecord


@dataclass(frozen=True)
class FolderEntry:
    name: str
    path: str
    created_at: Optional[datetime]
    modified_at: Optional[datetime]
    size: int = 0
    type: str = field(default=ENTRY_TYPE_FOLDER, init=False)


@dataclass(frozen=True)
class FileEntry:
    name: str
    path: str
    created_at: Optional[datetime]
    modified_at: Optional[datetime]
    size: int = 0
    metadata: Optional[MetadataRecord] = None
    type: str = field(default=ENTRY_TYPE_FILE, init=False)

    def with_metadata(self, record: Optional[MetadataRecord]) -> "FileEntry":
        return replace(self, metadata=record)


Entry = Union[FolderEntry, FileEntry]


def is_folder(entry: Entry) -> bool:
    return isinstance(entry, FolderEntry)
