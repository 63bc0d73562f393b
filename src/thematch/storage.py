"""
YAML-backed storage for matches, teams, participants and games.

Each table lives in its own YAML file inside the data directory. All access
goes through ``YamlStore.transaction()``, which holds a process-wide thread
lock plus a ``FileLock`` on the data directory for the whole read-check-write
sequence, so status checks followed by writes behave as compare-and-set.
Tables are only written back when the transaction body finishes without
raising.
"""
import os
import threading
from contextlib import contextmanager

import yaml
from filelock import FileLock

from thematch.models import Team, Match, Participant, Game


TABLES = ('teams', 'matches', 'participants', 'games', 'status_history')

_thread_locks = {}
_thread_locks_guard = threading.Lock()


def _thread_lock_for(data_dir: str):
    key = os.path.abspath(data_dir)
    with _thread_locks_guard:
        if key not in _thread_locks:
            _thread_locks[key] = threading.Lock()
        return _thread_locks[key]


class StoreSession:
    """Table access for the duration of one transaction."""

    def __init__(self, tables: dict):
        self._tables = tables
        self._dirty = set()

    @property
    def dirty_tables(self):
        return set(self._dirty)

    def _rows(self, table):
        return self._tables[table]

    def _find(self, table, row_id):
        for row in self._tables[table]:
            if row['id'] == row_id:
                return row
        return None

    def _insert(self, table, row):
        self._tables[table].append(row)
        self._dirty.add(table)

    def _replace(self, table, row):
        rows = self._tables[table]
        for idx, existing in enumerate(rows):
            if existing['id'] == row['id']:
                rows[idx] = row
                self._dirty.add(table)
                return True
        return False

    def _delete(self, table, row_id):
        rows = self._tables[table]
        kept = [r for r in rows if r['id'] != row_id]
        if len(kept) != len(rows):
            self._tables[table] = kept
            self._dirty.add(table)
            return True
        return False

    # Teams

    def get_team(self, team_id):
        row = self._find('teams', team_id)
        return Team.from_dict(row) if row else None

    def add_team(self, team: Team):
        self._insert('teams', team.to_dict())

    # Matches

    def get_match(self, match_id):
        row = self._find('matches', match_id)
        return Match.from_dict(row) if row else None

    def list_matches(self):
        return [Match.from_dict(r) for r in self._rows('matches')]

    def add_match(self, match: Match):
        self._insert('matches', match.to_dict())

    def update_match(self, match: Match):
        return self._replace('matches', match.to_dict())

    def delete_match(self, match_id):
        return self._delete('matches', match_id)

    # Participants

    def get_participant(self, participant_id):
        row = self._find('participants', participant_id)
        return Participant.from_dict(row) if row else None

    def participants_for_match(self, match_id):
        return [Participant.from_dict(r) for r in self._rows('participants') if r['match_id'] == match_id]

    def add_participant(self, participant: Participant):
        self._insert('participants', participant.to_dict())

    def update_participant(self, participant: Participant):
        return self._replace('participants', participant.to_dict())

    def delete_participant(self, participant_id):
        return self._delete('participants', participant_id)

    # Games

    def get_game(self, game_id):
        row = self._find('games', game_id)
        return Game.from_dict(row) if row else None

    def games_for_match(self, match_id):
        games = [Game.from_dict(r) for r in self._rows('games') if r['match_id'] == match_id]
        games.sort(key=lambda g: (g.round, g.game_number))
        return games

    def has_games(self, match_id) -> bool:
        return any(r['match_id'] == match_id for r in self._rows('games'))

    def find_game(self, match_id, round_number, game_number):
        for row in self._rows('games'):
            if (row['match_id'] == match_id and row['round'] == round_number
                    and row['game_number'] == game_number):
                return Game.from_dict(row)
        return None

    def add_games(self, games):
        for game in games:
            self._insert('games', game.to_dict())

    def insert_games_if_absent(self, match_id, games) -> bool:
        """Insert ``games`` only when the match owns no games yet."""
        if self.has_games(match_id):
            return False
        self.add_games(games)
        return True

    def delete_unscored_games(self, match_id):
        """Remove the games of a match; refuses when any game has a score."""
        games = [r for r in self._rows('games') if r['match_id'] == match_id]
        if any(r.get('team1_score') is not None or r.get('team2_score') is not None for r in games):
            return False
        if games:
            self._tables['games'] = [r for r in self._rows('games') if r['match_id'] != match_id]
            self._dirty.add('games')
        return True

    def update_game(self, game: Game):
        return self._replace('games', game.to_dict())

    def set_game_slot(self, game_id, slot: str, team_id):
        """Write a single team slot (``team1_id`` or ``team2_id``) of a game."""
        if slot not in ('team1_id', 'team2_id'):
            raise ValueError(f"Unknown game slot: {slot}")
        row = self._find('games', game_id)
        if row is None:
            return None
        if row.get(slot) != team_id:
            row[slot] = team_id
            self._dirty.add('games')
        return Game.from_dict(row)

    # Status history

    def append_status_change(self, entry: dict):
        self._insert('status_history', dict(entry))

    def status_history(self, match_id):
        return [dict(r) for r in self._rows('status_history') if r.get('match_id') == match_id]


class YamlStore:
    """Directory of YAML tables guarded by a file lock."""

    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self._file_lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)
        self._thread_lock = _thread_lock_for(data_dir)

    def _path(self, table):
        return os.path.join(self.data_dir, f'{table}.yaml')

    def _load(self, table):
        path = self._path(table)
        if not os.path.exists(path):
            return []
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data:
            return []
        return data.get(table, []) or []

    def _save(self, table, rows):
        path = self._path(table)
        tmp_path = path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({table: rows}, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, path)

    @contextmanager
    def transaction(self):
        with self._thread_lock, self._file_lock:
            tables = {table: self._load(table) for table in TABLES}
            session = StoreSession(tables)
            yield session
            for table in session.dirty_tables:
                self._save(table, session._tables[table])
