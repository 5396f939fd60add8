"""
Print pool matches (and optionally the elimination bracket) from a YAML pools file.

The file maps pool names to team names:

    Pool A:
      - Team 1
      - Team 2
"""
import argparse
import os
import sys
import yaml

from progression.elimination import generate_bracket
from progression.errors import TournamentError
from progression.models import Pool, TeamRef
from progression.standings import RETURN_LEG_FORMATS, generate_pool_matches
from settings import elimination_match_config, load_settings, pool_match_config


def load_pools(file_path):
    pools = []
    with open(file_path, mode='r', encoding='utf-8') as file:
        pools_data = yaml.safe_load(file) or {}
        for pool_name, team_names in pools_data.items():
            teams = [TeamRef(name, name, pool_name=pool_name) for name in team_names or []]
            pools.append(Pool(pool_name, pool_name, teams=teams))
    return pools


def generate_pool_play_matches(pools, config=None, return_leg=False):
    """Round-robin matches of every pool; pools with fewer than 2 teams are skipped."""
    matches = []
    for pool in pools:
        if len(pool.teams) < 2:
            print(f"Warning: Pool {pool.name} has fewer than 2 teams ({len(pool.teams)} found). "
                  f"Skipping match generation.", file=sys.stderr)
            continue
        matches.extend(generate_pool_matches(pool, config, return_leg=return_leg))
    return matches


def seed_from_pool_positions(pools, advance):
    """
    Bracket seeds before pool play ends: all pool winners first, then all
    runners-up, and so on, pools in name order within a position.
    """
    seeded = []
    for position in range(1, advance + 1):
        for pool in sorted(pools, key=lambda p: p.name):
            if position <= len(pool.teams):
                label = f"#{position} {pool.name}"
                seeded.append(TeamRef(label, label, pool_name=pool.name))
    return seeded


def _slot_label(slot):
    return slot.name if isinstance(slot, TeamRef) else slot.label


def main(argv=None):
    parser = argparse.ArgumentParser(description='Print pool play matches from a YAML pools file')
    parser.add_argument(
        'pools_file',
        nargs='?',
        help='YAML file mapping pool names to team names (default: data/teams.yaml)'
    )
    parser.add_argument('--settings', help='Settings YAML file (default: data/settings.yaml)')
    parser.add_argument('--return-leg', action='store_true', help='Play every pairing twice')
    parser.add_argument(
        '--bracket',
        action='store_true',
        help='Also print the elimination bracket seeded from pool positions'
    )
    parser.add_argument('--advance', type=int, help='Teams advancing from each pool')
    args = parser.parse_args(argv)

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    pools_file = args.pools_file or os.path.join(base_dir, 'data', 'teams.yaml')
    settings = load_settings(args.settings)

    pools = load_pools(pools_file)
    if not pools:
        return 0

    return_leg = args.return_leg or settings['match_format'] in RETURN_LEG_FORMATS
    matches = generate_pool_play_matches(pools, pool_match_config(settings), return_leg=return_leg)

    first_pool = True
    for pool in sorted(pools, key=lambda p: p.name):
        pool_matches = [m for m in matches if m.pool_id == pool.id]
        if not pool_matches:
            continue
        if not first_pool:
            print()
        print(f"# Pool {pool.name}")
        for match in pool_matches:
            print(f"{match.team1.name} vs {match.team2.name}")
        first_pool = False

    if args.bracket:
        advance = args.advance or settings['teams_qualified_per_pool']
        try:
            bracket = generate_bracket(seed_from_pool_positions(pools, advance),
                                       elimination_match_config(settings))
        except TournamentError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        current_round = None
        for match in bracket:
            if match.round != current_round:
                print()
                print(f"# {match.round}")
                current_round = match.round
            print(f"M{match.match_number}: {_slot_label(match.team1)} vs {_slot_label(match.team2)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
