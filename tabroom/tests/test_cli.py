"""
Operator CLI tests.

Handlers call asyncio.run themselves, so these tests are synchronous and
run against a throwaway file database.
"""
import asyncio
import json
import uuid

import pytest

from tabroom.cli import create_parser, main
from tabroom.cli.commands import DbCommand, DrawCommand, StandingsCommand, render_draw, render_standings
from tabroom.database import build_engine, build_sessionmaker
from tabroom.rbac import resolve_actor
from tabroom.schemas.draw import DebateView, DrawRequest, TeamSlot, TeamStanding
from tabroom.schemas.tournament import (
    LocationCreate, PhaseCreate, RoomCreate, RoundCreate, TeamCreate, TournamentCreate
)
from tabroom.services import draw_service, participant_service, structure_service, tournament_service, venue_service


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def _args(*argv):
    return create_parser().parse_args(list(argv))


# =============================================================================
# Parser
# =============================================================================

class TestParser:

    def test_standings_arguments(self):
        args = _args("standings", "--phase", "abc", "--cumulative", "--format", "json")
        assert args.command == "standings"
        assert args.phase == "abc"
        assert args.cumulative is True
        assert args.format == "json"

    def test_draw_short_flag(self):
        args = _args("draw", "-r", "xyz")
        assert args.round == "xyz"
        assert args.format == "text"

    def test_standings_requires_phase(self):
        with pytest.raises(SystemExit):
            _args("standings")

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


# =============================================================================
# Rendering
# =============================================================================

def test_render_empty_outputs():
    assert render_standings([]) == "No teams drawn in this phase."
    assert render_draw([]) == "Round has no draw."


def test_render_standings_rows():
    team_id = uuid.uuid4()
    text = render_standings([
        TeamStanding(rank=1, team_id=team_id, team_name="Team A", individual_points=75,
                     penalty_points=5, net_points=70),
    ])
    lines = text.splitlines()
    assert len(lines) == 2
    assert "Team A" in lines[1]
    assert lines[1].rstrip().endswith("70")


def test_render_draw_sides():
    prop, opp = uuid.uuid4(), uuid.uuid4()
    debate = DebateView(
        id=uuid.uuid4(),
        round_id=uuid.uuid4(),
        teams=[TeamSlot(team_id=prop, is_proposition=True), TeamSlot(team_id=opp, is_proposition=False)],
        judge_user_ids=[],
    )
    text = render_draw([debate])
    assert f"{prop} [PROP]" in text
    assert f"{opp} [OPP]" in text


# =============================================================================
# Handlers
# =============================================================================

def test_invalid_uuid_returns_error(database_url, capsys):
    engine = build_engine(database_url, echo=False)
    assert StandingsCommand(engine).execute(_args("standings", "--phase", "not-a-uuid")) == 1
    assert DrawCommand(engine).execute(_args("draw", "--round", "nope")) == 1
    assert "not a valid UUID" in capsys.readouterr().out


def test_db_init_then_unknown_phase(database_url, capsys):
    assert DbCommand(build_engine(database_url, echo=False)).execute(_args("db", "init")) == 0
    assert "Tables created." in capsys.readouterr().out

    missing = str(uuid.uuid4())
    code = StandingsCommand(build_engine(database_url, echo=False)).execute(_args("standings", "-p", missing))
    assert code == 1
    assert "not found" in capsys.readouterr().out


async def _seed_round(database_url):
    engine = build_engine(database_url, echo=False)
    session_factory = build_sessionmaker(engine)
    try:
        async with session_factory() as db:
            organizer = await tournament_service.create_user("organizer", db)
            tournament = await tournament_service.create_tournament(
                TournamentCreate(full_name="CLI Open", shortened_name="CLI"), organizer.id, db
            )
            actor = await resolve_actor(db, organizer.id, tournament.id)
            teams = [
                (await participant_service.create_team(
                    tournament.id, TeamCreate(full_name=name, shortened_name=name[:3]), actor, db
                )).id
                for name in ("Alpha", "Bravo")
            ]
            judge = await tournament_service.create_user("judge", db)
            location = await venue_service.create_location(tournament.id, LocationCreate(name="Hall"), actor, db)
            room = await venue_service.create_room(location.id, RoomCreate(name="A1"), actor, db)
            phase = await structure_service.create_phase(tournament.id, PhaseCreate(name="Open"), actor, db)
            round_obj = await structure_service.create_round(phase.id, RoundCreate(name="R1"), actor, db)
            await draw_service.generate_draw(
                round_obj.id,
                DrawRequest(team_pool=teams, judge_pool=[judge.id], room_pool=[room.id], side_policy="seeded"),
                actor,
                db,
            )
            return phase.id, round_obj.id
    finally:
        await engine.dispose()


def test_draw_and_standings_json(database_url, capsys):
    DbCommand(build_engine(database_url, echo=False)).execute(_args("db", "init"))
    phase_id, round_id = asyncio.run(_seed_round(database_url))
    capsys.readouterr()

    code = DrawCommand(build_engine(database_url, echo=False)).execute(
        _args("draw", "--round", str(round_id), "--format", "json")
    )
    assert code == 0
    draw = json.loads(capsys.readouterr().out)
    assert len(draw) == 1
    assert sorted(slot["is_proposition"] for slot in draw[0]["teams"]) == [False, True]

    code = StandingsCommand(build_engine(database_url, echo=False)).execute(
        _args("standings", "--phase", str(phase_id), "--format", "json")
    )
    assert code == 0
    standings = json.loads(capsys.readouterr().out)
    assert [row["team_name"] for row in standings] == ["Alpha", "Bravo"]
    assert all(row["rank"] == 1 for row in standings)
