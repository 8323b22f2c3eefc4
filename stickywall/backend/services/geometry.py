"""
Wall Geometry.

Pure functions for note placement. Every note is the same fixed-size
rectangle anchored at its top-left corner.

Placement is accepted when no single existing note covers more than
`max_overlap` of the candidate's own area. This is a pairwise worst-case
test; coverage contributed by several neighbours is not summed.
"""

import random
from collections.abc import Iterable
from dataclasses import dataclass

from stickywall.backend.core.config_schema import WallSchema


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class PlacementPolicy:
    """Geometry and tuning for placing notes, usually built from wall.yaml."""

    note_width: float
    note_height: float
    wall_width: float
    wall_height: float
    max_overlap: float
    center_x: float
    variance: float
    max_attempts: int
    edge_gap: float

    @classmethod
    def from_config(cls, wall: WallSchema) -> "PlacementPolicy":
        return cls(
            note_width=wall.note_width,
            note_height=wall.note_height,
            wall_width=wall.width,
            wall_height=wall.height,
            max_overlap=wall.max_overlap,
            center_x=wall.placement.center_x,
            variance=wall.placement.variance,
            max_attempts=wall.placement.max_attempts,
            edge_gap=wall.placement.edge_gap,
        )


def overlap_fraction(candidate: Position, existing: Position, width: float, height: float) -> float:
    """
    Intersection area of two notes divided by the candidate's own area.

    Rectangles that only touch along an edge do not overlap.
    """
    left = max(candidate.x, existing.x)
    right = min(candidate.x + width, existing.x + width)
    top = max(candidate.y, existing.y)
    bottom = min(candidate.y + height, existing.y + height)

    if left >= right or top >= bottom:
        return 0.0

    return ((right - left) * (bottom - top)) / (width * height)


def max_overlap(
    candidate: Position,
    existing: Iterable[Position],
    width: float,
    height: float,
) -> float:
    """Worst overlap of the candidate against any single existing note."""
    return max(
        (overlap_fraction(candidate, other, width, height) for other in existing),
        default=0.0,
    )


def is_placement_valid(candidate: Position, existing: Iterable[Position], policy: PlacementPolicy) -> bool:
    return max_overlap(candidate, existing, policy.note_width, policy.note_height) <= policy.max_overlap


def _random_candidate(policy: PlacementPolicy, rng: random.Random) -> Position:
    x = policy.center_x + rng.uniform(-policy.variance, policy.variance)
    y = rng.uniform(0.0, max(policy.wall_height - policy.note_height, 0.0))
    return Position(x=x, y=y)


def find_available_position(
    existing: Iterable[Position],
    policy: PlacementPolicy,
    rng: random.Random | None = None,
) -> Position:
    """
    Pick a position for a note whose owner did not choose one.

    Candidates are drawn around the horizontal centre of the wall. After
    `max_attempts` misses the note goes just past the right-most used
    position. The result is not guaranteed to satisfy the overlap policy.
    """
    rng = rng or random.Random()
    placed = list(existing)

    for _ in range(policy.max_attempts):
        candidate = _random_candidate(policy, rng)
        if is_placement_valid(candidate, placed, policy):
            return candidate

    if not placed:
        return _random_candidate(policy, rng)

    edge_x = max(p.x for p in placed) + policy.note_width + policy.edge_gap
    y = rng.uniform(0.0, max(policy.wall_height - policy.note_height, 0.0))
    return Position(x=edge_x, y=y)


def neighbourhood(candidate: Position, policy: PlacementPolicy) -> tuple[float, float, float, float]:
    """Bounds (min_x, max_x, min_y, max_y) holding every anchor that could overlap the candidate."""
    return (
        candidate.x - policy.note_width,
        candidate.x + policy.note_width,
        candidate.y - policy.note_height,
        candidate.y + policy.note_height,
    )


def placement_band(policy: PlacementPolicy) -> tuple[float, float, float, float]:
    """Bounds covering every note the random picker could collide with."""
    return (
        policy.center_x - policy.variance - policy.note_width,
        policy.center_x + policy.variance + policy.note_width,
        -policy.note_height,
        policy.wall_height,
    )
