"""元数据索引模型：以归一化相对路径为唯一键，记录文件/文件夹的分类属性。

存储规则：
- file_path：相对存储根目录，'/' 分隔，不以 '/' 开头或结尾；
- 物理目录树是“是否存在”的唯一依据，本表只负责描述性属性。
"""

from typing import Optional

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.filestore.core.constants import ENTRY_TYPE_FILE
from app.packages.filestore.models.base import Base, TimestampMixin


class MetadataRecord(TimestampMixin, Base):
    __tablename__ = "metadata_records"
    __table_args__ = (
        UniqueConstraint("file_path", name="uq_metadata_records_file_path"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    file_name: Mapped[str] = mapped_column(String(255))
    file_path: Mapped[str] = mapped_column(String(1024), index=True)
    type: Mapped[str] = mapped_column(String(16), default=ENTRY_TYPE_FILE, server_default=ENTRY_TYPE_FILE)
    year: Mapped[Optional[str]] = mapped_column(String(16), nullable=True, index=True)
    company_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    assembly_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<MetadataRecord {self.type}:{self.file_path}>"
