"""
CLI command handlers.

Each handler runs its coroutine with asyncio.run and maps engine errors to a
non-zero exit code.
"""
import asyncio
import json
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncEngine

from tabroom.database import build_sessionmaker, engine as default_engine, init_db
from tabroom.errors import TabroomError
from tabroom.schemas.draw import DebateView, TeamStanding
from tabroom.services.draw_service import get_round_draw
from tabroom.services.scoring_service import get_standings

logger = logging.getLogger(__name__)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except (TypeError, ValueError):
        print(f"Error: '{value}' is not a valid UUID")
        return None


def render_standings(standings: List[TeamStanding]) -> str:
    if not standings:
        return "No teams drawn in this phase."
    lines = [f"{'#':>3}  {'Team':<30} {'Ind':>6} {'Pen':>6} {'Net':>6}"]
    for row in standings:
        lines.append(
            f"{row.rank:>3}  {row.team_name[:30]:<30} {row.individual_points:>6} "
            f"{row.penalty_points:>6} {row.net_points:>6}"
        )
    return "\n".join(lines)


def render_draw(debates: List[DebateView]) -> str:
    if not debates:
        return "Round has no draw."
    lines = []
    for index, debate in enumerate(debates, start=1):
        sides = []
        for slot in debate.teams:
            label = {True: "PROP", False: "OPP", None: "?"}[slot.is_proposition]
            sides.append(f"{slot.team_id} [{label}]")
        lines.append(f"Debate {index}  room={debate.room_id}  marshal={debate.marshal_user_id}")
        lines.append(f"  teams:  {', '.join(sides)}")
        lines.append(f"  judges: {', '.join(str(j) for j in debate.judge_user_ids)}")
    return "\n".join(lines)


class _Command:
    def __init__(self, engine: Optional[AsyncEngine] = None):
        self.engine = engine or default_engine

    def _run(self, coro) -> int:
        try:
            return asyncio.run(coro)
        except TabroomError as e:
            logger.error(f"{e.code}: {e.message}")
            print(f"Error: {e.message}")
            return 1


class DbCommand(_Command):
    """Database CLI command handler."""

    def execute(self, args) -> int:
        if args.db_action == "init":
            return self._run(self._init())
        print("Error: Unknown database action")
        return 1

    async def _init(self) -> int:
        try:
            await init_db(self.engine)
        finally:
            await self.engine.dispose()
        print("Tables created.")
        return 0


class StandingsCommand(_Command):
    def execute(self, args) -> int:
        phase_id = _parse_uuid(args.phase)
        if phase_id is None:
            return 1
        return self._run(self._show(phase_id, args.cumulative, args.format))

    async def _show(self, phase_id: UUID, cumulative: bool, fmt: str) -> int:
        session_factory = build_sessionmaker(self.engine)
        try:
            async with session_factory() as db:
                standings = await get_standings(phase_id, db, cumulative=cumulative)
        finally:
            await self.engine.dispose()

        if fmt == "json":
            print(json.dumps([row.model_dump(mode="json") for row in standings], indent=2))
        else:
            print(render_standings(standings))
        return 0


class DrawCommand(_Command):
    def execute(self, args) -> int:
        round_id = _parse_uuid(args.round)
        if round_id is None:
            return 1
        return self._run(self._show(round_id, args.format))

    async def _show(self, round_id: UUID, fmt: str) -> int:
        session_factory = build_sessionmaker(self.engine)
        try:
            async with session_factory() as db:
                debates = await get_round_draw(round_id, db)
        finally:
            await self.engine.dispose()

        if fmt == "json":
            print(json.dumps([d.model_dump(mode="json") for d in debates], indent=2))
        else:
            print(render_draw(debates))
        return 0
