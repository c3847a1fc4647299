"""元数据索引：按路径幂等写入、前缀改名与前缀删除。"""

import pytest

from app.packages.filestore.core.exceptions import InvalidInputError
from app.packages.filestore.models import MetadataRecord
from app.packages.filestore.services.metadata_index import metadata_index
from app.packages.filestore.utils.classification import Classification


def _add(db, path, entry_type="file", cls=None):
    return metadata_index.upsert_on_create(
        db,
        file_path=path,
        file_name=path.rsplit("/", 1)[-1],
        entry_type=entry_type,
        classification=cls,
    )


def test_upsert_is_idempotent_per_path(db_session_fixture):
    db = db_session_fixture
    _add(db, "2024-AC-XY/a.pdf", cls=Classification("2024", "AC", "XY"))
    _add(db, "/2024-AC-XY//a.pdf", cls=Classification("2025", "BD", "ZZ"))

    rows = db.query(MetadataRecord).all()
    assert len(rows) == 1
    assert rows[0].file_path == "2024-AC-XY/a.pdf"
    assert (rows[0].year, rows[0].company_code, rows[0].assembly_code) == ("2025", "BD", "ZZ")


def test_upsert_rejects_unknown_type(db_session_fixture):
    with pytest.raises(InvalidInputError):
        _add(db_session_fixture, "a", entry_type="symlink")


def test_rename_record_and_descendants(db_session_fixture):
    db = db_session_fixture
    _add(db, "A", entry_type="folder")
    _add(db, "A/x.txt")
    _add(db, "A/sub/y.txt")
    _add(db, "AB/z.txt")

    metadata_index.rename_record(db, old_path="A", new_path="B", new_name="B")
    moved = metadata_index.rename_descendants(db, old_prefix="A", new_prefix="B")

    assert moved == 2
    paths = sorted(r.file_path for r in db.query(MetadataRecord).all())
    assert paths == ["AB/z.txt", "B", "B/sub/y.txt", "B/x.txt"]
    assert metadata_index.find_by_path(db, "B").file_name == "B"


def test_rename_missing_record_is_noop(db_session_fixture):
    assert metadata_index.rename_record(db_session_fixture, old_path="ghost", new_path="g2", new_name="g2") is None


def test_delete_by_prefix_keeps_siblings(db_session_fixture):
    db = db_session_fixture
    _add(db, "A", entry_type="folder")
    _add(db, "A/x.txt")
    _add(db, "A/sub/y.txt")
    _add(db, "AB/z.txt")
    _add(db, "a/lower.txt")

    assert metadata_index.delete_by_prefix(db, "A") == 2
    assert metadata_index.delete_record(db, "A") is True
    assert metadata_index.delete_record(db, "A") is False
    db.expire_all()
    paths = sorted(r.file_path for r in db.query(MetadataRecord).all())
    assert paths == ["AB/z.txt", "a/lower.txt"]


def test_delete_by_root_prefix_is_refused(db_session_fixture):
    with pytest.raises(InvalidInputError):
        metadata_index.delete_by_prefix(db_session_fixture, "")


def test_records_under_and_filter(db_session_fixture):
    db = db_session_fixture
    _add(db, "2024-AC-XY/a.pdf", cls=Classification("2024", "AC", "XY"))
    _add(db, "2024-BD-XY/b.pdf", cls=Classification("2024", "BD", "XY"))
    _add(db, "2023-AC-QQ/c.pdf", cls=Classification("2023", "AC", "QQ"))

    assert set(metadata_index.records_under(db, "")) == {"2024-AC-XY/a.pdf", "2024-BD-XY/b.pdf", "2023-AC-QQ/c.pdf"}
    assert set(metadata_index.records_under(db, "2024-AC-XY")) == {"2024-AC-XY/a.pdf"}
    assert set(metadata_index.find_many(db, ["2023-AC-QQ/c.pdf", "missing"])) == {"2023-AC-QQ/c.pdf"}

    rows = metadata_index.filter(db, years=["2024"], company_codes=["AC", "BD"])
    assert [r.file_path for r in rows] == ["2024-AC-XY/a.pdf", "2024-BD-XY/b.pdf"]
    rows = metadata_index.filter(db, company_codes=["AC"], assembly_codes=["QQ"])
    assert [r.file_path for r in rows] == ["2023-AC-QQ/c.pdf"]
