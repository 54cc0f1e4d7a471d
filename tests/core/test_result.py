"""Tests for jobspine.core.result module."""

import pytest

from jobspine.core.errors import StoreError
from jobspine.core.result import Err, Ok, Result


class TestOk:
    """Test Ok class."""

    def test_create_ok(self):
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok() is True
        assert result.is_err() is False
        assert result.unwrap() == 42

    def test_ok_none_is_still_ok(self):
        """Ok(None) is how an empty queue is reported."""
        result = Ok(None)
        assert result.is_ok()
        assert result.unwrap() is None

    def test_equality_and_repr(self):
        assert Ok(None) == Ok(None)
        assert Ok(1) != Ok(2)
        assert repr(Ok("x")) == "Ok('x')"


class TestErr:
    """Test Err class."""

    def test_unwrap_raises(self):
        with pytest.raises(StoreError):
            Err(StoreError("down")).unwrap()

    def test_flags(self):
        result = Err(ValueError("x"))
        assert result.is_err() is True
        assert result.is_ok() is False

    def test_repr(self):
        assert repr(Err(ValueError("x"))) == "Err(ValueError('x'))"


class TestPatternMatching:
    def test_match_distinguishes_three_outcomes(self):
        def describe(result: Result[int | None]) -> str:
            match result:
                case Ok(None):
                    return "empty"
                case Ok(value):
                    return f"value {value}"
                case Err(error):
                    return f"error {error}"
            return "unreachable"

        assert describe(Ok(None)) == "empty"
        assert describe(Ok(3)) == "value 3"
        assert describe(Err(StoreError("down"))) == "error down"
