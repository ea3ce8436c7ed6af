import pytest

from authenticator.core.exceptions import ValidationError
from authenticator.core.pattern import pattern_to_string, string_to_pattern, validate_pattern
from authenticator.schemas.accounts import PatternPoint


def points(*pairs):
    return [PatternPoint(row=r, col=c) for r, c in pairs]


def test_pattern_to_string_preserves_order():
    assert pattern_to_string(points((0, 0), (0, 1), (1, 1), (2, 2))) == "0,0-0,1-1,1-2,2"
    assert pattern_to_string(points((2, 2), (1, 1), (0, 1), (0, 0))) == "2,2-1,1-0,1-0,0"

def test_string_to_pattern():
    assert string_to_pattern("0,0-1,2-2,1") == points((0, 0), (1, 2), (2, 1))

@pytest.mark.parametrize("value", ["0,0-1", "a,b", "0;0-1,1", ""])
def test_string_to_pattern_rejects_malformed(value):
    with pytest.raises(ValidationError):
        string_to_pattern(value)

def test_valid_pattern():
    assert validate_pattern(points((0, 0), (0, 1), (0, 2), (1, 2)))

def test_too_few_points():
    assert not validate_pattern(points((0, 0), (0, 1), (0, 2)))

def test_repeated_point():
    assert not validate_pattern(points((0, 0), (0, 1), (0, 0), (1, 1)))

@pytest.mark.parametrize("bad", [(3, 0), (0, 3), (-1, 0)])
def test_out_of_bounds(bad):
    assert not validate_pattern(points((0, 0), (0, 1), (1, 1), bad))

def test_larger_grid():
    pattern = points((0, 0), (1, 1), (2, 2), (3, 3))
    assert not validate_pattern(pattern, grid_size=3)
    assert validate_pattern(pattern, grid_size=4)

@pytest.mark.parametrize("value", ["0,0-0,1-1,1-2,2", "2,1-1,0-0,2", "10,3-0,0"])
def test_canonical_string_survives_parsing(value):
    assert pattern_to_string(string_to_pattern(value)) == value
