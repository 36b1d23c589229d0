from .base import Base

# Registry
from .user import User
from .tournament import Tournament
from .roles import TournamentRole, Affiliation
from .team import Team, Attendee
from .motion import Motion
from .location import Location, Room

# Structure + draw
from .phase import Phase, Round, StageStatus, TERMINAL_STATUSES
from .debate import Debate, DebateTeamAssignment, DebateJudgeAssignment

# Ledgers
from .ledger import ScoreEntry, StatusTransitionLog
