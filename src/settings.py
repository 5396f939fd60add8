"""
Tournament settings: defaults merged with an optional YAML file.
"""
import os
import yaml

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))
SETTINGS_FILE = 'settings.yaml'


def get_default_settings():
    """Return default settings."""
    return {
        'sets_per_match_pool': 1,
        'points_per_set_pool': 21,
        'tie_break_enabled_pools': False,
        'match_format': 'aller',
        'teams_qualified_per_pool': 2,
        'sets_per_match_elimination': 3,
        'points_per_set_elimination': 21,
        'tie_break_enabled_elimination': True,
        # [last rank covered, points]; a null rank is the floor for everyone else
        'rank_points': [
            [1, 100],
            [2, 80],
            [3, 65],
            [4, 55],
            [8, 40],
            [16, 25],
            [32, 15],
            [None, 10],
        ],
    }


def load_settings(path=None):
    """Load settings from YAML file, merging with defaults."""
    defaults = get_default_settings()
    if path is None:
        path = os.path.join(DATA_DIR, SETTINGS_FILE)
    if not os.path.exists(path):
        return defaults
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
        if not data:
            return defaults
        # Merge with defaults to ensure all keys exist
        for key, value in defaults.items():
            if key not in data:
                data[key] = value
        return data


def save_settings(settings, path=None):
    """Save settings to YAML file."""
    if path is None:
        path = os.path.join(DATA_DIR, SETTINGS_FILE)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)


def pool_match_config(settings):
    """Match rules for pool play."""
    return {
        'sets_to_win': settings['sets_per_match_pool'],
        'points_per_set': settings['points_per_set_pool'],
        'tie_break_enabled': settings['tie_break_enabled_pools'],
    }


def elimination_match_config(settings):
    """Match rules for the elimination bracket."""
    return {
        'sets_to_win': settings['sets_per_match_elimination'],
        'points_per_set': settings['points_per_set_elimination'],
        'tie_break_enabled': settings['tie_break_enabled_elimination'],
    }
