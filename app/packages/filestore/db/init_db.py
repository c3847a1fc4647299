"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.filestore.core.config import get_settings
from app.packages.filestore.db import session as db_session
from app.packages.filestore.models.base import Base
from app.packages.filestore.models.metadata_record import MetadataRecord  # noqa: F401 - ensure table creation
from app.packages.filestore.models.reference_code import ReferenceCode  # noqa: F401 - ensure table creation
from app.packages.filestore.services.reference_code_service import reference_code_service

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables, make sure the storage root is present and seed reference codes."""
    Base.metadata.create_all(bind=db_session.engine)

    settings = get_settings()
    storage_root = settings.storage_root
    storage_root.mkdir(parents=True, exist_ok=True)
    logger.info("Storage root ready at %s", storage_root)

    seed_path = settings.reference_codes_path
    if seed_path is None:
        return
    if not seed_path.is_file():
        logger.warning("Reference code seed file not found at %s", seed_path)
        return

    session = db_session.SessionLocal()
    try:
        inserted = reference_code_service.seed_from_file(session, seed_path)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Failed to seed reference codes from %s", seed_path)
        raise
    finally:
        session.close()
    logger.info("Seeded %s reference codes from %s", inserted, seed_path)
