from typing import List, Sequence

from authenticator.core.config import settings
from authenticator.core.exceptions import ValidationError
from authenticator.schemas.accounts import PatternPoint


def pattern_to_string(points: Sequence[PatternPoint]) -> str:
    """Canonical form: "row,col" pairs joined by "-" in entry order."""
    return "-".join(f"{p.row},{p.col}" for p in points)

def string_to_pattern(value: str) -> List[PatternPoint]:
    points = []
    for chunk in value.split("-"):
        row, sep, col = chunk.partition(",")
        if not sep:
            raise ValidationError(f"Malformed pattern point: {chunk!r}")
        try:
            points.append(PatternPoint(row=int(row), col=int(col)))
        except ValueError:
            raise ValidationError(f"Malformed pattern point: {chunk!r}")
    return points

def validate_pattern(points: Sequence[PatternPoint], grid_size: int = 3) -> bool:
    """
    A pattern is valid when it has at least PATTERN_MIN_POINTS points,
    no repeated point, and every point inside the grid.
    """
    if len(points) < settings.PATTERN_MIN_POINTS:
        return False

    unique_points = {f"{p.row},{p.col}" for p in points}
    if len(unique_points) != len(points):
        return False

    return all(0 <= p.row < grid_size and 0 <= p.col < grid_size for p in points)
