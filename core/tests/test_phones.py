import pytest

from core.utils.phones import normalize_or_none, same_number, to_e164


@pytest.mark.parametrize("raw", ["+1 202 555 0143", "(202) 555-0143", "202.555.0143", "12025550143", "0012025550143"])
def test_to_e164_us_formats(raw):
    assert to_e164(raw) == "+12025550143"


def test_to_e164_rejects_garbage():
    with pytest.raises(ValueError):
        to_e164("abc")
    with pytest.raises(ValueError):
        to_e164("")


def test_normalize_or_none_and_same_number():
    assert normalize_or_none("12") is None
    assert normalize_or_none(None) is None
    assert same_number("+12025550143", "(202) 555-0143")
    assert not same_number("+12025550143", None)
