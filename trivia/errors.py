"""
Exception hierarchy for the Trivia Game.
"""


class TriviaError(Exception):
    """Base exception for trivia game errors."""
    pass


class FetchError(TriviaError):
    """Raised when the question source is unreachable or returns malformed data."""
    pass


class StoreWriteError(TriviaError):
    """Raised when a score could not be written to the score store."""
    pass


class StoreReadError(TriviaError):
    """Raised when the leaderboard could not be read from the score store."""
    pass


class ValidationError(TriviaError):
    """Raised when player input is rejected before reaching the score store."""
    pass


class InvalidSessionStateError(TriviaError):
    """Raised when the game is in the wrong state for the requested operation."""
    pass
