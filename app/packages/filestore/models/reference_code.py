"""参考编码模型：公司编码与总成编码，作为搜索过滤项与文件夹命名片段。"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.filestore.models.base import Base, TimestampMixin


class ReferenceCode(TimestampMixin, Base):
    """按 ``kind``（company/assembly）分类存储的编码与名称。"""

    __tablename__ = "reference_codes"
    __table_args__ = (
        UniqueConstraint("kind", "code", name="uq_reference_codes_kind_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    kind: Mapped[str] = mapped_column(String(16), index=True)
    code: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(255))
