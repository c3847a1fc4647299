"""参考编码：服务层新增与接口查询。"""

import json

import pytest
from fastapi.testclient import TestClient

from app.packages.filestore.core.config import get_settings
from app.packages.filestore.core.exceptions import ConflictError, InvalidInputError
from app.packages.filestore.db.init_db import init_db
from app.packages.filestore.services.reference_code_service import reference_code_service


def test_add_code_rejects_duplicates(db_session_fixture):
    reference_code_service.add_code(db_session_fixture, kind="company", code="AC", name="Acme")
    with pytest.raises(ConflictError):
        reference_code_service.add_code(db_session_fixture, kind="company", code="AC", name="Other")
    # 不同类别下允许同名编码
    reference_code_service.add_code(db_session_fixture, kind="assembly", code="AC", name="Axle Carrier")


def test_add_code_validates_input(db_session_fixture):
    with pytest.raises(InvalidInputError):
        reference_code_service.add_code(db_session_fixture, kind="company", code=" ", name="x")
    with pytest.raises(InvalidInputError):
        reference_code_service.add_code(db_session_fixture, kind="supplier", code="S1", name="x")


def test_lookup_endpoints(client: TestClient, auth_headers, db_session_fixture):
    reference_code_service.add_code(db_session_fixture, kind="company", code="BD", name="Bravo")
    reference_code_service.add_code(db_session_fixture, kind="company", code="AC", name="Acme")
    reference_code_service.add_code(db_session_fixture, kind="assembly", code="XY", name="Chassis")

    resp = client.get("/api/v1/reference-codes/company-codes", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "total": 2,
        "codes": [{"code": "AC", "name": "Acme"}, {"code": "BD", "name": "Bravo"}],
    }

    resp = client.get("/api/v1/reference-codes/assembly-codes", headers=auth_headers)
    assert resp.json()["data"]["codes"] == [{"code": "XY", "name": "Chassis"}]

    assert client.get("/api/v1/reference-codes/assembly-codes").status_code == 401


def _write_seed(tmp_path):
    seed = tmp_path / "reference_codes.json"
    seed.write_text(
        json.dumps(
            {
                "company": [{"code": "AC", "name": "Acme"}, {"code": "BD", "name": "Bravo"}],
                "assembly": [{"code": "XY", "name": "Chassis"}, {"code": "", "name": "blank"}],
            }
        ),
        encoding="utf-8",
    )
    return seed


def test_seed_from_file_is_idempotent(db_session_fixture, tmp_path):
    seed = _write_seed(tmp_path)

    assert reference_code_service.seed_from_file(db_session_fixture, seed) == 3
    db_session_fixture.commit()
    assert reference_code_service.seed_from_file(db_session_fixture, seed) == 0

    listed = reference_code_service.list_codes(db_session_fixture, kind="company")["data"]
    assert listed == {"total": 2, "codes": [{"code": "AC", "name": "Acme"}, {"code": "BD", "name": "Bravo"}]}


def test_seed_from_file_rejects_unknown_kind(db_session_fixture, tmp_path):
    seed = tmp_path / "bad.json"
    seed.write_text(json.dumps({"supplier": [{"code": "S1", "name": "x"}]}), encoding="utf-8")
    with pytest.raises(InvalidInputError):
        reference_code_service.seed_from_file(db_session_fixture, seed)


def test_init_db_seeds_reference_codes(monkeypatch, tmp_path, db_session_fixture):
    seed = _write_seed(tmp_path)
    monkeypatch.setattr(get_settings(), "reference_codes_file", str(seed))

    init_db()
    init_db()

    codes = reference_code_service.list_codes(db_session_fixture, kind="assembly")["data"]["codes"]
    assert codes == [{"code": "XY", "name": "Chassis"}]
