import pytest

from app.services.department import normalize, normalize_all


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Engineering ", "engineering"),
        ("  Human   Resources  ", "human resource"),
        ("Operations", "operation"),
        ("Presales", "presales"),
        ("PRESALES", "presales"),
        ("Business", "business"),
        ("IT", "it"),
        ("Ops", "ops"),
        ("", ""),
        (None, ""),
        ("   ", ""),
    ],
)
def test_normalize(raw, expected):
    assert normalize(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["Engineering ", "Operations", "Presales", "Business", "Sales", "Logistics", "Accounts", "a  b  cs", "Unit s", "abcs s"],
)
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_normalize_all_drops_empty_values():
    assert normalize_all(["Engineering", " engineering ", "", None, "Presales"]) == {"engineering", "presales"}
