"""
Domain records for matches, teams, participants and games.

Records are plain objects persisted as YAML mappings; ``to_dict`` and
``from_dict`` are the only serialization points.
"""
import uuid
from datetime import datetime, timezone


class MatchFormat:
    SINGLE_ELIMINATION = 'single_elimination'
    DOUBLE_ELIMINATION = 'double_elimination'
    ROUND_ROBIN = 'round_robin'
    SWISS = 'swiss'
    LEAGUE = 'league'

    ALL = (SINGLE_ELIMINATION, DOUBLE_ELIMINATION, ROUND_ROBIN, SWISS, LEAGUE)
    ELIMINATION = (SINGLE_ELIMINATION, DOUBLE_ELIMINATION)


class MatchStatus:
    DRAFT = 'draft'
    REGISTRATION = 'registration'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    ALL = (DRAFT, REGISTRATION, IN_PROGRESS, COMPLETED, CANCELLED)


class ParticipantStatus:
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    ALL = (PENDING, APPROVED, REJECTED)
    ACTIVE = (PENDING, APPROVED)


class GameStatus:
    SCHEDULED = 'scheduled'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value):
    """Normalize a datetime (or ISO string) to a UTC ISO-8601 string."""
    if value is None or value == '':
        return None
    if isinstance(value, str):
        value = parse_timestamp(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value):
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Team:
    def __init__(self, id, name, captain_id, description=None, logo_url=None, created_at=None):
        self.id = id
        self.name = name
        self.captain_id = captain_id
        self.description = description
        self.logo_url = logo_url
        self.created_at = created_at

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'captain_id': self.captain_id,
            'description': self.description,
            'logo_url': self.logo_url,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            captain_id=data.get('captain_id'),
            description=data.get('description'),
            logo_url=data.get('logo_url'),
            created_at=data.get('created_at'),
        )

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, captain_id={self.captain_id})"


class Match:
    def __init__(self, id, title, format, creator_id, status=MatchStatus.DRAFT,
                 description=None, max_participants=None, registration_deadline=None,
                 start_date=None, end_date=None, venue=None, current_round=0,
                 rules=None, settings=None, results=None, created_at=None, updated_at=None):
        self.id = id
        self.title = title
        self.description = description
        self.format = format
        self.status = status
        self.creator_id = creator_id
        self.max_participants = max_participants
        self.registration_deadline = registration_deadline
        self.start_date = start_date
        self.end_date = end_date
        self.venue = venue
        self.current_round = current_round or 0
        self.rules = rules if rules else {}
        self.settings = settings if settings else {}
        self.results = results if results else []
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_elimination(self) -> bool:
        return self.format in MatchFormat.ELIMINATION

    def advance_round(self, round_number: int):
        """Raise ``current_round`` to ``round_number``; it never decreases."""
        if round_number > self.current_round:
            self.current_round = round_number

    def record_result(self, game):
        """Insert or replace the denormalized outcome of ``game``."""
        entry = {
            'game_id': game.id,
            'round': game.round,
            'game_number': game.game_number,
            'team1_id': game.team1_id,
            'team2_id': game.team2_id,
            'team1_score': game.team1_score,
            'team2_score': game.team2_score,
            'winner_id': game.winner_id,
            'status': game.status,
            'completed_at': game.ended_at,
        }
        for idx, existing in enumerate(self.results):
            if existing.get('game_id') == game.id:
                self.results[idx] = entry
                break
        else:
            self.results.append(entry)
        self.results.sort(key=lambda r: (r['round'], r['game_number']))

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'format': self.format,
            'status': self.status,
            'creator_id': self.creator_id,
            'max_participants': self.max_participants,
            'registration_deadline': self.registration_deadline,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'venue': self.venue,
            'current_round': self.current_round,
            'rules': dict(self.rules),
            'settings': dict(self.settings),
            'results': [dict(r) for r in self.results],
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            title=data['title'],
            description=data.get('description'),
            format=data.get('format', MatchFormat.SINGLE_ELIMINATION),
            status=data.get('status', MatchStatus.DRAFT),
            creator_id=data.get('creator_id'),
            max_participants=data.get('max_participants'),
            registration_deadline=data.get('registration_deadline'),
            start_date=data.get('start_date'),
            end_date=data.get('end_date'),
            venue=data.get('venue'),
            current_round=data.get('current_round', 0),
            rules=data.get('rules'),
            settings=data.get('settings'),
            results=data.get('results'),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )

    def __repr__(self):
        return f"Match(id={self.id}, title={self.title}, format={self.format}, status={self.status})"


class Participant:
    def __init__(self, id, match_id, team_id, status=ParticipantStatus.PENDING, applied_at=None,
                 responded_at=None, responded_by=None, rejection_reason=None, notes=None, seed=None):
        self.id = id
        self.match_id = match_id
        self.team_id = team_id
        self.status = status
        self.applied_at = applied_at
        self.responded_at = responded_at
        self.responded_by = responded_by
        self.rejection_reason = rejection_reason
        self.notes = notes
        self.seed = seed

    @property
    def is_active(self) -> bool:
        return self.status in ParticipantStatus.ACTIVE

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'team_id': self.team_id,
            'status': self.status,
            'applied_at': self.applied_at,
            'responded_at': self.responded_at,
            'responded_by': self.responded_by,
            'rejection_reason': self.rejection_reason,
            'notes': self.notes,
            'seed': self.seed,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            match_id=data['match_id'],
            team_id=data['team_id'],
            status=data.get('status', ParticipantStatus.PENDING),
            applied_at=data.get('applied_at'),
            responded_at=data.get('responded_at'),
            responded_by=data.get('responded_by'),
            rejection_reason=data.get('rejection_reason'),
            notes=data.get('notes'),
            seed=data.get('seed'),
        )

    def __repr__(self):
        return f"Participant(id={self.id}, match_id={self.match_id}, team_id={self.team_id}, status={self.status})"


class Game:
    def __init__(self, id, match_id, round, game_number, team1_id=None, team2_id=None,
                 status=GameStatus.SCHEDULED, team1_score=None, team2_score=None, winner_id=None,
                 is_bye=False, venue=None, scheduled_at=None, started_at=None, ended_at=None):
        self.id = id
        self.match_id = match_id
        self.round = round
        self.game_number = game_number
        self.team1_id = team1_id
        self.team2_id = team2_id
        self.status = status
        self.team1_score = team1_score
        self.team2_score = team2_score
        self.winner_id = winner_id
        self.is_bye = is_bye
        self.venue = venue
        self.scheduled_at = scheduled_at
        self.started_at = started_at
        self.ended_at = ended_at

    @property
    def is_completed(self) -> bool:
        return self.status == GameStatus.COMPLETED

    @property
    def has_score(self) -> bool:
        return self.team1_score is not None or self.team2_score is not None

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'round': self.round,
            'game_number': self.game_number,
            'team1_id': self.team1_id,
            'team2_id': self.team2_id,
            'status': self.status,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
            'winner_id': self.winner_id,
            'is_bye': self.is_bye,
            'venue': self.venue,
            'scheduled_at': self.scheduled_at,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            match_id=data['match_id'],
            round=data['round'],
            game_number=data['game_number'],
            team1_id=data.get('team1_id'),
            team2_id=data.get('team2_id'),
            status=data.get('status', GameStatus.SCHEDULED),
            team1_score=data.get('team1_score'),
            team2_score=data.get('team2_score'),
            winner_id=data.get('winner_id'),
            is_bye=data.get('is_bye', False),
            venue=data.get('venue'),
            scheduled_at=data.get('scheduled_at'),
            started_at=data.get('started_at'),
            ended_at=data.get('ended_at'),
        )

    def __repr__(self):
        return (f"Game(round={self.round}, game_number={self.game_number}, "
                f"team1={self.team1_id}, team2={self.team2_id}, status={self.status})")


class BracketSlot:
    """One team position of a game: ``empty``, ``awaiting`` or ``filled``."""

    EMPTY = 'empty'
    AWAITING = 'awaiting'
    FILLED = 'filled'

    def __init__(self, kind, team_id=None, from_game_id=None):
        self.kind = kind
        self.team_id = team_id
        self.from_game_id = from_game_id

    @classmethod
    def empty(cls):
        return cls(cls.EMPTY)

    @classmethod
    def awaiting(cls, from_game_id):
        return cls(cls.AWAITING, from_game_id=from_game_id)

    @classmethod
    def filled(cls, team_id):
        return cls(cls.FILLED, team_id=team_id)

    def to_dict(self):
        if self.kind == self.FILLED:
            return {'kind': self.kind, 'team_id': self.team_id}
        if self.kind == self.AWAITING:
            return {'kind': self.kind, 'from_game_id': self.from_game_id}
        return {'kind': self.kind}

    def __eq__(self, other):
        if not isinstance(other, BracketSlot):
            return NotImplemented
        return (self.kind, self.team_id, self.from_game_id) == (other.kind, other.team_id, other.from_game_id)

    def __repr__(self):
        if self.kind == self.FILLED:
            return f"BracketSlot.filled({self.team_id})"
        if self.kind == self.AWAITING:
            return f"BracketSlot.awaiting({self.from_game_id})"
        return "BracketSlot.empty()"


def resolve_now(now=None) -> datetime:
    """``now`` as an aware UTC datetime, defaulting to the current time."""
    if now is None:
        return utcnow()
    return parse_timestamp(now)
