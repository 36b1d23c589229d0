"""
tabroom/rbac.py
Role-Based Access Control for tournament operations.

The identity collaborator resolves who is acting; this module turns the
stored per-tournament role tags into an Actor and checks capability
membership. Credentials and tokens are never handled here.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.errors import ErrorCode, ForbiddenError, ValidationError
from tabroom.orm.roles import TournamentRole

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    ADMIN = "admin"
    ORGANIZER = "organizer"
    ADJUDICATION_COORDINATOR = "adjudication_coordinator"
    JUDGE = "judge"
    MARSHAL = "marshal"


class Permission(str, enum.Enum):
    READ_TOURNAMENT = "read_tournament"
    WRITE_TOURNAMENT = "write_tournament"
    MODIFY_ROLES = "modify_roles"
    WRITE_TEAMS = "write_teams"
    WRITE_ATTENDEES = "write_attendees"
    WRITE_STRUCTURE = "write_structure"
    WRITE_DRAW = "write_draw"
    OVERRIDE_STATUS = "override_status"
    SUBMIT_VERDICT = "submit_verdict"
    SUBMIT_OWN_VERDICT = "submit_own_verdict"


# ================= PERMISSION MATRIX =================

ROLE_PERMISSIONS = {
    Role.ADMIN: frozenset(Permission),
    Role.ORGANIZER: frozenset({
        Permission.READ_TOURNAMENT,
        Permission.WRITE_TOURNAMENT,
        Permission.MODIFY_ROLES,
        Permission.WRITE_TEAMS,
        Permission.WRITE_ATTENDEES,
        Permission.WRITE_STRUCTURE,
        Permission.WRITE_DRAW,
        Permission.OVERRIDE_STATUS,
        Permission.SUBMIT_VERDICT,
    }),
    Role.ADJUDICATION_COORDINATOR: frozenset({
        Permission.READ_TOURNAMENT,
        Permission.WRITE_DRAW,
    }),
    Role.JUDGE: frozenset({
        Permission.READ_TOURNAMENT,
        Permission.SUBMIT_OWN_VERDICT,
    }),
    Role.MARSHAL: frozenset({
        Permission.READ_TOURNAMENT,
        Permission.SUBMIT_OWN_VERDICT,
    }),
}


@dataclass(frozen=True)
class Actor:
    """Acting user scoped to one tournament."""
    user_id: UUID
    tournament_id: UUID
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    def permissions(self) -> FrozenSet[Permission]:
        granted = set()
        for role in self.roles:
            granted |= ROLE_PERMISSIONS.get(role, frozenset())
        return frozenset(granted)

    def can(self, permission: Permission) -> bool:
        return permission in self.permissions()


def parse_roles(tags: Optional[Iterable[str]]) -> FrozenSet[Role]:
    """Map stored role tags to the closed Role set; unknown tags are rejected."""
    parsed = set()
    for tag in tags or []:
        try:
            parsed.add(Role(tag))
        except ValueError:
            raise ValidationError(f"Unknown role '{tag}'", code=ErrorCode.INVALID_INPUT)
    return frozenset(parsed)


async def resolve_actor(db: AsyncSession, user_id: UUID, tournament_id: UUID) -> Actor:
    """Build an Actor from the roles table. A user with no row has no roles."""
    result = await db.execute(
        select(TournamentRole.roles).where(
            TournamentRole.user_id == user_id,
            TournamentRole.tournament_id == tournament_id
        )
    )
    tags = result.scalar_one_or_none()
    return Actor(user_id=user_id, tournament_id=tournament_id, roles=parse_roles(tags))


def require_permission(actor: Actor, permission: Permission, tournament_id: UUID) -> None:
    """Raise ForbiddenError unless the actor holds the permission in this tournament."""
    if actor.tournament_id != tournament_id:
        logger.warning(
            f"Cross-tournament access denied: user={actor.user_id} "
            f"scope={actor.tournament_id} target={tournament_id}"
        )
        raise ForbiddenError(
            "Actor is not scoped to this tournament",
            code=ErrorCode.SCOPE_VIOLATION
        )
    if not actor.can(permission):
        logger.warning(f"Permission {permission.value} denied for user={actor.user_id}")
        raise ForbiddenError(
            f"Missing permission '{permission.value}'",
            details={"roles": sorted(r.value for r in actor.roles)}
        )
