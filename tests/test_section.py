import pytest

from epublatex.section import SecNo


def test_sec_no_inc():
    s = SecNo()
    s.inc(1)
    assert list(s) == [1]
    s.inc(1)
    assert list(s) == [2]
    s.inc(3)
    assert list(s) == [2, 0, 1]
    s.inc(2)
    assert list(s) == [2, 1]


def test_sec_no_str():
    assert str(SecNo([1, 2, 3])) == "1.2.3"
    assert str(SecNo()) == ""


def test_inc_then_str():
    s = SecNo([4])
    s.inc(2)
    assert str(s) == "4.1"


def test_invalid_level():
    with pytest.raises(ValueError):
        SecNo([1]).inc(0)