"""
Error taxonomy for the progression engine.
"""


class TournamentError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(TournamentError):
    """Invalid or insufficient input to a generator (too few teams, bad quotas)."""


class ValidationError(TournamentError):
    """Malformed match or set data."""


class InconsistentStateError(TournamentError):
    """An operation would contradict state already recorded in the bracket."""


class ConflictError(TournamentError):
    """A stored record changed since it was read (version mismatch)."""
