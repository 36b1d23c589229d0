"""
Side assignment policies for drawn debates.

MANUAL leaves every team undecided until staff set sides. SEEDED orders a
debate's teams by SHA-256 of "<round_id>|<team_id>" and gives the first
half (rounded up) proposition, so a redraw with the same inputs always
produces the same sides. No randomness is involved.
"""
import enum
import hashlib
from typing import Dict, List, Optional
from uuid import UUID

from tabroom.config.settings import settings
from tabroom.errors import ErrorCode, ValidationError


class SidePolicy(str, enum.Enum):
    MANUAL = "manual"
    SEEDED = "seeded"


def resolve_policy(value: Optional[str] = None) -> SidePolicy:
    """Explicit value wins, otherwise the configured default."""
    raw = (value or settings.SIDE_POLICY or SidePolicy.MANUAL.value).lower()
    try:
        return SidePolicy(raw)
    except ValueError:
        raise ValidationError(
            f"Unknown side policy '{raw}'",
            code=ErrorCode.INVALID_INPUT,
            details={"allowed": [p.value for p in SidePolicy]}
        )


def _seed_key(round_id: UUID, team_id: UUID) -> str:
    return hashlib.sha256(f"{round_id}|{team_id}".encode("utf-8")).hexdigest()


def max_per_side(team_count: int) -> int:
    return (team_count + 1) // 2


def assign_sides(policy: SidePolicy, round_id: UUID, team_ids: List[UUID]) -> Dict[UUID, Optional[bool]]:
    if policy == SidePolicy.MANUAL:
        return {team_id: None for team_id in team_ids}

    ordered = sorted(team_ids, key=lambda t: (_seed_key(round_id, t), str(t)))
    proposition_count = max_per_side(len(ordered))
    return {
        team_id: index < proposition_count
        for index, team_id in enumerate(ordered)
    }
