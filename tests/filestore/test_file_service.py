"""文件服务：物理操作与元数据索引的协同。"""

import io
import os
import threading

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.packages.filestore.core.exceptions import InvalidInputError, NotFoundError
from app.packages.filestore.db import session as db_session
from app.packages.filestore.models import MetadataRecord
from app.packages.filestore.services.criteria import EntryCriteria
from app.packages.filestore.services.file_service import FileService
from app.packages.filestore.services.metadata_index import MetadataIndex, metadata_index
from app.packages.filestore.utils.classification import build_classification


def _upload(service, db, path, name, content=b"data", cls=None):
    return service.upload(db, path=path, stream=io.BytesIO(content), original_name=name, classification=cls)


def _paths(entries):
    return [e.path for e in entries]


def test_top_level_folder_gets_two_subfolders(file_service, db_session_fixture, storage_root):
    data = file_service.create_folder(db_session_fixture, parent_path="", folder_name="2024-AC-XY")
    assert data == {
        "folderName": "2024-AC-XY",
        "path": "2024-AC-XY",
        "subfolders": ["2D-Drawing", "3D-Model"],
        "indexSynced": True,
    }
    assert sorted(p.name for p in (storage_root / "2024-AC-XY").iterdir()) == ["2D-Drawing", "3D-Model"]

    record = metadata_index.find_by_path(db_session_fixture, "2024-AC-XY")
    assert record.type == "folder"
    assert (record.year, record.company_code, record.assembly_code) == ("2024", "AC", "XY")


def test_nested_folder_gets_no_subfolders(file_service, db_session_fixture, storage_root):
    file_service.create_folder(db_session_fixture, parent_path="", folder_name="top")
    data = file_service.create_folder(db_session_fixture, parent_path="top", folder_name="inner")
    assert data["subfolders"] == []
    assert list((storage_root / "top" / "inner").iterdir()) == []


def test_create_folder_collision_names(file_service, db_session_fixture):
    names = [
        file_service.create_folder(db_session_fixture, parent_path="", folder_name="X")["folderName"]
        for _ in range(3)
    ]
    assert names == ["X", "X-1", "X-2"]
    assert metadata_index.find_by_path(db_session_fixture, "X-2") is not None


def test_create_folder_composes_name_from_classification(file_service, db_session_fixture):
    data = file_service.create_folder(
        db_session_fixture,
        parent_path="",
        folder_name=None,
        classification=build_classification("2024", "AC", "XY"),
    )
    assert data["folderName"] == "2024-AC-XY"


def test_create_folder_requires_name(file_service, db_session_fixture):
    with pytest.raises(InvalidInputError):
        file_service.create_folder(db_session_fixture, parent_path="", folder_name="  ")


def test_rename_updates_disk_and_records(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="2024-AC-XY")
    _upload(file_service, db, "2024-AC-XY/2D-Drawing", "a.pdf")

    data = file_service.rename(db, path="", old_name="2024-AC-XY", new_name="2024-AC-ZZ")
    assert data == {"oldPath": "2024-AC-XY", "newPath": "2024-AC-ZZ", "indexSynced": True}
    assert (storage_root / "2024-AC-ZZ" / "2D-Drawing" / "a.pdf").exists()
    assert not (storage_root / "2024-AC-XY").exists()

    assert metadata_index.find_by_path(db, "2024-AC-XY") is None
    assert metadata_index.find_by_path(db, "2024-AC-ZZ").file_name == "2024-AC-ZZ"
    moved = metadata_index.find_by_path(db, "2024-AC-ZZ/2D-Drawing/a.pdf")
    assert moved is not None and moved.file_name == "a.pdf"


def test_rename_file_record(file_service, db_session_fixture):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="docs")
    _upload(file_service, db, "docs", "old.txt")
    file_service.rename(db, path="docs", old_name="old.txt", new_name="new.txt")
    record = metadata_index.find_by_path(db, "docs/new.txt")
    assert record is not None and record.file_name == "new.txt"
    assert metadata_index.find_by_path(db, "docs/old.txt") is None


def test_rename_missing_entry(file_service, db_session_fixture):
    with pytest.raises(NotFoundError) as exc_info:
        file_service.rename(db_session_fixture, path="", old_name="ghost", new_name="x")
    assert exc_info.value.status_code == 400


def test_delete_folder_removes_descendant_records(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="2024-AC-XY")
    file_service.create_folder(db, parent_path="", folder_name="2024-AC-XYZ")
    _upload(file_service, db, "2024-AC-XY/2D-Drawing", "a.pdf")
    _upload(file_service, db, "2024-AC-XY/3D-Model", "b.step")
    _upload(file_service, db, "2024-AC-XYZ/2D-Drawing", "keep.pdf")

    data = file_service.delete(db, path="", name="2024-AC-XY")
    assert data == {"path": "2024-AC-XY", "removedRecords": 3, "indexSynced": True}
    assert not (storage_root / "2024-AC-XY").exists()

    remaining = sorted(r.file_path for r in db.query(MetadataRecord).all())
    assert remaining == ["2024-AC-XYZ", "2024-AC-XYZ/2D-Drawing/keep.pdf"]


def test_delete_missing_entry(file_service, db_session_fixture):
    with pytest.raises(NotFoundError):
        file_service.delete(db_session_fixture, path="", name="ghost")


def test_upload_requires_file_name(file_service, db_session_fixture):
    with pytest.raises(InvalidInputError):
        _upload(file_service, db_session_fixture, "", "")


def test_upload_overwrites_and_keeps_single_record(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    _upload(file_service, db, "", "a.txt", b"first")
    data = _upload(file_service, db, "", "a.txt", b"second", cls=build_classification("2023"))
    assert data == {"fileName": "a.txt", "currentPath": "", "path": "a.txt", "indexSynced": True}
    assert (storage_root / "a.txt").read_bytes() == b"second"
    rows = db.query(MetadataRecord).filter(MetadataRecord.file_path == "a.txt").all()
    assert len(rows) == 1 and rows[0].year == "2023"


def test_upload_list_search_round_trip(file_service, db_session_fixture):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="2024-AC-XY")
    _upload(file_service, db, "2024-AC-XY/2D-Drawing", "spec.pdf", b"pdf-bytes")

    listed = file_service.list_items(db, path="2024-AC-XY/2D-Drawing")
    assert _paths(listed) == ["2024-AC-XY/2D-Drawing/spec.pdf"]
    assert listed[0].size == len(b"pdf-bytes")
    record = listed[0].metadata
    assert (record.year, record.company_code, record.assembly_code) == ("2024", "AC", "XY")

    result = file_service.search(db, criteria=EntryCriteria.from_params(query="SPEC"))
    assert _paths(result.entries) == ["2024-AC-XY/2D-Drawing/spec.pdf"]
    assert result.truncated is False


def test_company_code_filter_semantics(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="2024-ABC-XY")
    file_service.create_folder(db, parent_path="", folder_name="2024-DEF-XY")
    _upload(file_service, db, "2024-ABC-XY/2D-Drawing", "a.pdf")
    _upload(file_service, db, "2024-DEF-XY/2D-Drawing", "b.pdf")
    # 直接写入磁盘、没有索引记录的文件
    (storage_root / "2024-ABC-XY" / "3D-Model" / "loose.step").write_bytes(b"x")

    result = file_service.search(db, criteria=EntryCriteria.from_params(company_code="ABC"))
    assert _paths(result.entries) == ["2024-ABC-XY", "2024-ABC-XY/2D-Drawing/a.pdf"]

    # 没有记录的文件仍能按名称命中
    result = file_service.search(db, criteria=EntryCriteria.from_params(query="loose"))
    assert _paths(result.entries) == ["2024-ABC-XY/3D-Model/loose.step"]
    assert result.entries[0].metadata is None


def test_list_missing_path(file_service, db_session_fixture):
    with pytest.raises(NotFoundError) as exc_info:
        file_service.list_items(db_session_fixture, path="nope")
    assert exc_info.value.status_code == 404


def test_list_filters_and_sorting(file_service, db_session_fixture):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="zeta")
    file_service.create_folder(db, parent_path="", folder_name="alpha")
    _upload(file_service, db, "", "big.bin", b"x" * 50)
    _upload(file_service, db, "", "small.bin", b"x")

    entries = file_service.list_items(db, path="", sort_by="size", sort_order="desc")
    assert _paths(entries) == ["zeta", "alpha", "big.bin", "small.bin"]
    assert [e.type for e in entries] == ["folder", "folder", "file", "file"]

    entries = file_service.list_items(db, path="")
    assert _paths(entries) == ["alpha", "zeta", "big.bin", "small.bin"]

    only_files = file_service.list_items(db, path="", criteria=EntryCriteria.from_params(entry_type="file"))
    assert _paths(only_files) == ["big.bin", "small.bin"]

    future = file_service.list_items(db, path="", criteria=EntryCriteria.from_params(created_from="2999-01-01"))
    assert future == []

    with pytest.raises(InvalidInputError):
        file_service.list_items(db, path="", sort_by="color")


def test_search_scope_and_limits(file_service, db_session_fixture):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="2024-AC-XY")
    file_service.create_folder(db, parent_path="", folder_name="2025-AC-XY")

    scoped = file_service.search(db, criteria=EntryCriteria(), path="2025-AC-XY")
    assert _paths(scoped.entries) == ["2025-AC-XY/2D-Drawing", "2025-AC-XY/3D-Model"]

    capped = file_service.search(db, criteria=EntryCriteria(), max_results=1)
    assert capped.truncated is True
    assert len(capped.entries) == 1

    expired = file_service.search(db, criteria=EntryCriteria(), timeout_seconds=-1)
    assert expired.truncated is True
    assert expired.entries == []


def test_index_failure_keeps_physical_result(store, db_session_fixture, storage_root):
    class BrokenIndex(MetadataIndex):
        def upsert_on_create(self, db, **kwargs):
            raise SQLAlchemyError("database unavailable")

    service = FileService(store, index=BrokenIndex())
    data = service.create_folder(db_session_fixture, parent_path="", folder_name="kept")
    assert data["indexSynced"] is False
    assert (storage_root / "kept").is_dir()
    assert db_session_fixture.query(MetadataRecord).count() == 0


def test_reindex_repairs_missing_and_stale_records(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    (storage_root / "2024-AC-XY" / "2D-Drawing").mkdir(parents=True)
    (storage_root / "2024-AC-XY" / "2D-Drawing" / "a.pdf").write_bytes(b"x")
    metadata_index.upsert_on_create(db, file_path="gone/old.pdf", file_name="old.pdf")

    data = file_service.reindex(db, path="")
    assert data == {"scanned": 3, "inserted": 3, "removed": 1, "skipped": []}

    record = metadata_index.find_by_path(db, "2024-AC-XY/2D-Drawing/a.pdf")
    assert (record.year, record.company_code, record.assembly_code) == ("2024", "AC", "XY")
    assert metadata_index.find_by_path(db, "gone/old.pdf") is None

    again = file_service.reindex(db, path="")
    assert again["inserted"] == 0 and again["removed"] == 0


def test_path_locks_are_released(file_service, db_session_fixture):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="a")
    _upload(file_service, db, "a", "f.txt")
    file_service.rename(db, path="a", old_name="f.txt", new_name="g.txt")
    file_service.delete(db, path="", name="a")
    with pytest.raises(NotFoundError):
        file_service.delete(db, path="", name="a")
    assert file_service.locks.active_count() == 0


def test_search_finds_files_behind_a_directory_alias(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="2024-ABC-XY")
    _upload(file_service, db, "2024-ABC-XY/2D-Drawing", "a.pdf")
    # 别名排在真实目录之前，真实目录不能因此被当作重复目录跳过
    os.symlink(storage_root / "2024-ABC-XY", storage_root / "0-alias", target_is_directory=True)

    result = file_service.search(db, criteria=EntryCriteria.from_params(company_code="ABC"))
    assert "2024-ABC-XY/2D-Drawing/a.pdf" in _paths(result.entries)
    assert not any(p.startswith("0-alias/") for p in _paths(result.entries))


def test_delete_waits_for_upload_inside_subtree(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    file_service.create_folder(db, parent_path="", folder_name="a")
    file_service.create_folder(db, parent_path="a", folder_name="b")
    outcome: dict = {}

    class RacingIndex(MetadataIndex):
        def upsert_on_create(self, db, **kwargs):
            # 文件已落盘、索引尚未写入时发起对祖先目录的删除
            if kwargs["file_path"] == "a/b/f.txt" and "worker" not in outcome:
                worker = threading.Thread(target=_delete_a)
                outcome["worker"] = worker
                worker.start()
                worker.join(timeout=0.3)
                outcome["blocked"] = worker.is_alive()
            return super().upsert_on_create(db, **kwargs)

    service = FileService(file_service.store, index=RacingIndex(), locks=file_service.locks)

    def _delete_a():
        session = db_session.SessionLocal()
        try:
            outcome["deleted"] = service.delete(session, path="", name="a")
        finally:
            session.close()

    data = _upload(service, db, "a/b", "f.txt")
    assert data["indexSynced"] is True
    outcome["worker"].join(timeout=5)

    assert outcome["blocked"] is True
    assert outcome["deleted"]["path"] == "a"
    assert not (storage_root / "a").exists()
    db.expire_all()
    assert metadata_index.find_by_path(db, "a/b/f.txt") is None
    assert db.query(MetadataRecord).count() == 0
    assert file_service.locks.active_count() == 0


def test_reindex_subtree_indexes_its_start_folder(file_service, db_session_fixture, storage_root):
    db = db_session_fixture
    (storage_root / "2024-AC-XY" / "2D-Drawing").mkdir(parents=True)

    data = file_service.reindex(db, path="2024-AC-XY")
    assert data == {"scanned": 2, "inserted": 2, "removed": 0, "skipped": []}

    record = metadata_index.find_by_path(db, "2024-AC-XY")
    assert record.type == "folder"
    assert (record.year, record.company_code, record.assembly_code) == ("2024", "AC", "XY")

    assert file_service.reindex(db, path="2024-AC-XY")["inserted"] == 0
