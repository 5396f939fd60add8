"""
Shared pytest fixtures for the tournament progression tests.
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.models import Entrant, TeamRef


@pytest.fixture
def ranked_teams():
    """Factory for N ranked teams T1..TN, best first."""
    def make(count):
        return [TeamRef(f"T{i}", f"Team {i}") for i in range(1, count + 1)]
    return make


@pytest.fixture
def bracket_config():
    """Best-of-five-style elimination rules used across bracket tests."""
    return {'sets_to_win': 3, 'points_per_set': 21, 'tie_break_enabled': True}


@pytest.fixture
def entrants():
    """Twelve players across the four skill levels."""
    levels = ['Expert', 'Expert', 'Advanced', 'Advanced', 'Advanced', 'Intermediate',
              'Intermediate', 'Intermediate', 'Beginner', 'Beginner', 'Beginner', 'Beginner']
    return [Entrant(f"P{i}", f"Player {i}", level) for i, level in enumerate(levels, start=1)]


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    return str(data_dir)


@pytest.fixture
def client(temp_data_dir):
    """Create a test client backed by the temporary data directory."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client
