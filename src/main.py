# Operator entry point: inspect a match bracket or repair winner progression

import argparse
import os
import sys

from thematch.bracket import bracket_view
from thematch.errors import MatchError
from thematch.matches import get_match
from thematch.progression import reconcile
from thematch.storage import YamlStore


def default_data_dir():
    base_dir = os.path.dirname(os.path.dirname(__file__))
    return os.environ.get('MATCH_DATA_DIR', os.path.join(base_dir, 'data'))


def print_bracket(store, match_id):
    match = get_match(store, match_id)
    with store.transaction() as tx:
        games = tx.games_for_match(match_id)
    view = bracket_view(match, games)

    print(f"\n--- {match.title} ({match.format}, {match.status}) ---")
    if not view['rounds']:
        print("No games generated yet.")
        return
    for round_info in view['rounds']:
        print(f"\n{round_info['name']}:")
        for game in round_info['games']:
            sides = []
            for key in ('team1', 'team2'):
                slot = game['slots'][key]
                if slot['kind'] == 'filled':
                    sides.append(slot['team_id'])
                elif slot['kind'] == 'awaiting':
                    sides.append(f"winner of {slot['from_game_id']}")
                else:
                    sides.append("-")
            line = f"  Game {game['game_number']}: {sides[0]} vs {sides[1]}"
            if game['is_bye']:
                line += f"  [bye, {game['winner_id']} advances]"
            elif game['status'] == 'completed':
                line += f"  {game['team1_score']}-{game['team2_score']}, winner {game['winner_id'] or 'none'}"
            print(line)
    if view['champion']:
        print(f"\nChampion: {view['champion']}")


def run_reconcile(store, match_id):
    changes = reconcile(store, match_id)
    if not changes:
        print("Bracket is consistent, nothing to repair.")
        return
    print(f"Repaired {len(changes)} slot(s):")
    for change in changes:
        print(f"  game {change['game_id']} {change['slot']} <- {change['team_id']}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Inspect and repair match brackets.')
    parser.add_argument('--data-dir', default=default_data_dir(), help='Data directory with the YAML tables')
    subparsers = parser.add_subparsers(dest='command', required=True)

    bracket_parser = subparsers.add_parser('bracket', help='Print the bracket of a match')
    bracket_parser.add_argument('match_id')
    reconcile_parser = subparsers.add_parser('reconcile', help='Re-run winner progression for a match')
    reconcile_parser.add_argument('match_id')

    args = parser.parse_args(argv)
    store = YamlStore(args.data_dir)
    try:
        if args.command == 'bracket':
            print_bracket(store, args.match_id)
        else:
            run_reconcile(store, args.match_id)
    except MatchError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
