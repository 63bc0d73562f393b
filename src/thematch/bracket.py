"""
Bracket and schedule generation for a match.

Elimination brackets address every game by ``(round, game_number)`` with
1-indexed game numbers. Game ``(r, n)`` feeds game ``(r + 1, ceil(n / 2))``:
odd ``n`` fills ``team1`` and even ``n`` fills ``team2``. A slot with no
feeding game is structurally empty; the team opposite it advances on a bye.
"""
import math
from typing import Dict, List, Optional, Tuple

from thematch.models import BracketSlot, Game, GameStatus, MatchFormat, new_id, to_timestamp, resolve_now


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def games_per_round(num_teams: int) -> List[int]:
    """Game count of each elimination round, first round first."""
    if num_teams < 2:
        return []
    counts = [math.ceil(num_teams / 2)]
    while counts[-1] > 1:
        counts.append(math.ceil(counts[-1] / 2))
    return counts


def next_slot(round_number: int, game_number: int) -> Tuple[int, int, str]:
    """Where the winner of ``(round_number, game_number)`` is placed."""
    slot = 'team1_id' if game_number % 2 == 1 else 'team2_id'
    return round_number + 1, (game_number + 1) // 2, slot


def feeder_number(game_number: int, slot: str) -> int:
    """Game number in the previous round that feeds ``slot``."""
    return 2 * game_number - 1 if slot == 'team1_id' else 2 * game_number


def other_slot(slot: str) -> str:
    return 'team2_id' if slot == 'team1_id' else 'team1_id'


def slot_state(game: Game, slot: str, feeder: Optional[Game]) -> BracketSlot:
    """Tagged state of one team slot given the game feeding it, if any."""
    team_id = getattr(game, slot)
    if team_id:
        return BracketSlot.filled(team_id)
    if feeder is not None:
        return BracketSlot.awaiting(feeder.id)
    return BracketSlot.empty()


def complete_as_bye(game: Game, now) -> bool:
    """Mark a game won by its only team. Returns False when it is not a bye."""
    if game.is_completed:
        return False
    present = [t for t in (game.team1_id, game.team2_id) if t]
    if len(present) != 1:
        return False
    game.is_bye = True
    game.status = GameStatus.COMPLETED
    game.winner_id = present[0]
    game.started_at = game.started_at or to_timestamp(now)
    game.ended_at = to_timestamp(now)
    return True


def _settle_byes(games: List[Game], now):
    """Propagate bye winners through a freshly generated bracket, round by round."""
    by_key: Dict[Tuple[int, int], Game] = {(g.round, g.game_number): g for g in games}
    for game in sorted(games, key=lambda g: (g.round, g.game_number)):
        if game.round > 1 and not game.is_completed:
            for slot in ('team1_id', 'team2_id'):
                feeder = by_key.get((game.round - 1, feeder_number(game.game_number, slot)))
                if feeder is None and getattr(game, other_slot(slot)):
                    complete_as_bye(game, now)
                    break
        if game.is_completed and game.winner_id:
            next_round, next_number, slot = next_slot(game.round, game.game_number)
            target = by_key.get((next_round, next_number))
            if target is not None:
                setattr(target, slot, game.winner_id)


def build_single_elimination(match_id: str, team_ids: List[str], now=None) -> List[Game]:
    """
    Build a single elimination bracket from teams in seed order.

    Round 1 pairs seeds ``2i`` and ``2i + 1``; an odd team out gets a bye.
    Later rounds start empty and are filled as winners advance.
    """
    now = resolve_now(now)
    games = []
    for round_idx, count in enumerate(games_per_round(len(team_ids))):
        round_number = round_idx + 1
        for i in range(count):
            game = Game(
                id=new_id(),
                match_id=match_id,
                round=round_number,
                game_number=i + 1,
                status=GameStatus.SCHEDULED,
            )
            if round_number == 1:
                game.team1_id = team_ids[2 * i]
                game.team2_id = team_ids[2 * i + 1] if 2 * i + 1 < len(team_ids) else None
                if game.team2_id is None:
                    complete_as_bye(game, now)
            games.append(game)
    _settle_byes(games, now)
    return games


def build_round_robin(match_id: str, team_ids: List[str]) -> List[Game]:
    """
    Build a single round robin with the circle method.

    Every team meets every other team once; with an odd team count one team
    sits out each round.
    """
    teams = list(team_ids)
    if len(teams) < 2:
        return []
    if len(teams) % 2 == 1:
        teams.append(None)

    games = []
    num_rounds = len(teams) - 1
    half = len(teams) // 2
    for round_idx in range(num_rounds):
        game_number = 1
        for i in range(half):
            team1 = teams[i]
            team2 = teams[len(teams) - 1 - i]
            if team1 is None or team2 is None:
                continue
            games.append(Game(
                id=new_id(),
                match_id=match_id,
                round=round_idx + 1,
                game_number=game_number,
                team1_id=team1,
                team2_id=team2,
                status=GameStatus.SCHEDULED,
            ))
            game_number += 1
        # Keep the first team fixed and rotate the rest clockwise
        teams = [teams[0]] + [teams[-1]] + teams[1:-1]
    return games


def generate_games(match, team_ids: List[str], now=None) -> List[Game]:
    """Games for ``match`` given approved teams in seed order."""
    if match.format in MatchFormat.ELIMINATION:
        return build_single_elimination(match.id, team_ids, now=now)
    return build_round_robin(match.id, team_ids)


def terminal_games(match, games: List[Game]) -> List[Game]:
    """Games whose results decide the match: the final round, or every game in league play."""
    if not games:
        return []
    if match.format in MatchFormat.ELIMINATION:
        last_round = max(g.round for g in games)
        return [g for g in games if g.round == last_round]
    return list(games)


def unfinished_terminal_games(match, games: List[Game]) -> List[Game]:
    pending = []
    for game in terminal_games(match, games):
        if not game.is_completed:
            pending.append(game)
        elif match.format in MatchFormat.ELIMINATION and not game.winner_id:
            pending.append(game)
    return pending


def bracket_view(match, games: List[Game]) -> dict:
    """
    Rounds of a match with the tagged state of every team slot.

    Returns dict with:
    - rounds: list of {round, name, games}
    - total_rounds, total_games
    - champion: winner of the final for elimination formats
    """
    by_key = {(g.round, g.game_number): g for g in games}
    elimination = match.format in MatchFormat.ELIMINATION

    rounds = {}
    for game in games:
        slots = {}
        for slot in ('team1_id', 'team2_id'):
            feeder = None
            if elimination and game.round > 1:
                feeder = by_key.get((game.round - 1, feeder_number(game.game_number, slot)))
            slots[slot[:-3]] = slot_state(game, slot, feeder).to_dict()
        entry = game.to_dict()
        entry['slots'] = slots
        entry['is_playable'] = (not game.is_completed) and bool(game.team1_id and game.team2_id)
        rounds.setdefault(game.round, []).append(entry)

    last_round = max(rounds) if rounds else 0
    round_list = []
    for round_number in sorted(rounds):
        round_games = rounds[round_number]
        if elimination:
            name = get_round_name(2 ** (last_round - round_number + 1))
        else:
            name = f"Round {round_number}"
        round_list.append({'round': round_number, 'name': name, 'games': round_games})

    champion = None
    if elimination and round_list:
        final_games = round_list[-1]['games']
        if len(final_games) == 1:
            champion = final_games[0].get('winner_id')

    return {
        'match_id': match.id,
        'format': match.format,
        'rounds': round_list,
        'total_rounds': len(round_list),
        'total_games': len(games),
        'champion': champion,
    }
