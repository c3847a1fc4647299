"""路径归一化与分类字段换算。"""

import pytest

from app.packages.filestore.core.exceptions import InvalidInputError
from app.packages.filestore.utils.classification import (
    Classification,
    build_classification,
    classification_from_path,
    compose_folder_name,
    parse_filter_values,
)
from app.packages.filestore.utils.path_utils import (
    normalize_rel_path,
    replace_prefix,
    top_segment,
    validate_name,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, ""),
        ("", ""),
        ("/", ""),
        ("/a//b/", "a/b"),
        ("a\\b\\c", "a/b/c"),
        ("./a/./b", "a/b"),
    ],
)
def test_normalize_rel_path(raw, expected):
    assert normalize_rel_path(raw) == expected


@pytest.mark.parametrize("raw", ["..", "a/../b", "a\\..\\b"])
def test_normalize_rejects_parent_segments(raw):
    with pytest.raises(InvalidInputError):
        normalize_rel_path(raw)


def test_validate_name():
    assert validate_name("  report.pdf ") == "report.pdf"
    for bad in ("", "   ", ".", "..", "a/b", "a\\b"):
        with pytest.raises(InvalidInputError):
            validate_name(bad)


def test_replace_prefix_only_touches_whole_segments():
    assert replace_prefix("A/x/y", "A", "B") == "B/x/y"
    assert replace_prefix("A", "A", "B") == "B"
    assert replace_prefix("AB/x", "A", "B") == "AB/x"
    assert top_segment("2024-AC-XY/2D-Drawing/spec.pdf") == "2024-AC-XY"


def test_classification_from_path():
    cls = classification_from_path("2024-AC-XY/2D-Drawing/spec.pdf")
    assert cls == Classification("2024", "AC", "XY")
    # 重名后缀不影响解析
    assert classification_from_path("2024-AC-XY-1/a.txt") == Classification("2024", "AC", "XY")
    assert classification_from_path("2023/a.txt") == Classification(year="2023")
    assert classification_from_path("misc/a.txt").is_empty
    assert classification_from_path("").is_empty


def test_compose_folder_name():
    assert compose_folder_name(build_classification("2024", "AC", "XY")) == "2024-AC-XY"
    assert compose_folder_name(build_classification("2024")) == "2024"
    assert compose_folder_name(build_classification(None, "AC", None)) is None
    assert compose_folder_name(build_classification(" ", " ", " ")) is None


def test_merged_with_prefers_explicit_fields():
    explicit = build_classification(None, "ZZ", None)
    merged = explicit.merged_with(Classification("2024", "AC", "XY"))
    assert merged == Classification("2024", "ZZ", "XY")


def test_parse_filter_values():
    assert parse_filter_values(None) == ()
    assert parse_filter_values("") == ()
    assert parse_filter_values("AC, BD ,,") == ("AC", "BD")
