import pytest

from bookloans.errors import InvalidArgument
from bookloans.validators import DateValidator, FieldValidator, TextValidator


def test_require_lists_missing_fields():
    with pytest.raises(InvalidArgument) as exc:
        FieldValidator.require({"userId": 1, "bookId": " "}, ("userId", "bookId", "copyId"))
    assert "missing: bookId, copyId" in str(exc.value)


@pytest.mark.parametrize("value", ["abc", 0, -3, True, 1.5, None])
def test_parse_id_rejects(value):
    with pytest.raises(InvalidArgument):
        FieldValidator.parse_id(value, "userId")


def test_parse_id_accepts_numeric_strings():
    assert FieldValidator.parse_id(" 12 ", "userId") == 12
    assert FieldValidator.parse_id(7, "userId") == 7


@pytest.mark.parametrize("raw, expected", [
    ("2024-01-15", "2024-01-15"),
    ("2024-01-15T23:59:00Z", "2024-01-15"),
    ("2024-01-15T08:00:00+02:00", "2024-01-15"),
])
def test_parse_date(raw, expected):
    assert DateValidator.parse_date(raw, "issueDate") == expected


@pytest.mark.parametrize("raw", ["", "15/01/2024", "2024-13-01", 20240115])
def test_parse_date_rejects(raw):
    with pytest.raises(InvalidArgument):
        DateValidator.parse_date(raw, "issueDate")


def test_optional_date_blank_is_none():
    assert DateValidator.parse_optional_date(None, "returnDate") is None
    assert DateValidator.parse_optional_date("  ", "returnDate") is None


def test_labels():
    assert TextValidator.normalize_label(" lotr-2 ") == "LOTR-2"
    assert TextValidator.label_prefix("The Lord of the Rings") == "THELORDOFTHERINGS"
    assert TextValidator.label_prefix("!!!") == "COPY"
    with pytest.raises(InvalidArgument):
        TextValidator.normalize_label("-LEADING")
    with pytest.raises(InvalidArgument):
        TextValidator.normalize_label(42)


def test_roles():
    assert TextValidator.validate_role(None) == "user"
    assert TextValidator.validate_role(" Admin ") == "admin"
    with pytest.raises(InvalidArgument):
        TextValidator.validate_role("root")
