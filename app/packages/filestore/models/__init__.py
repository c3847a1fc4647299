"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.filestore.models.metadata_record import MetadataRecord
from app.packages.filestore.models.reference_code import ReferenceCode

__all__ = ["MetadataRecord", "ReferenceCode"]
