"""
Core data models for the Trivia Game.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from datetime import datetime
from enum import Enum


class Difficulty(Enum):
    """Question difficulty as reported by the question source."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AnswerState(Enum):
    """Per-session answer state of a question."""
    UNANSWERED = "unanswered"
    CORRECT = "correct"
    WRONG = "wrong"


class GameStatus(Enum):
    """Terminal state of a game session."""
    IN_PROGRESS = "in_progress"
    WON = "won"
    LOST = "lost"


DEFAULT_DIFFICULTY_DELTAS = {
    Difficulty.EASY: 2,
    Difficulty.MEDIUM: 4,
    Difficulty.HARD: 8,
}


@dataclass(frozen=True)
class Question:
    """Represents a single trivia question and its per-session answer state."""
    category: str
    difficulty: Difficulty
    text: str
    correct_answer: str
    incorrect_answers: Tuple[str, ...] = ()
    answer_state: AnswerState = AnswerState.UNANSWERED
    locked: bool = False
    chosen_answer: Optional[str] = None

    def choices(self) -> List[str]:
        """Incorrect answers followed by the correct answer, unordered."""
        return list(self.incorrect_answers) + [self.correct_answer]


@dataclass
class GameSettings:
    """Configuration settings for a game session."""
    initial_score: int = 24
    target_score: int = 0
    batch_size: int = 10
    difficulty_deltas: Dict[Difficulty, int] = field(
        default_factory=lambda: dict(DEFAULT_DIFFICULTY_DELTAS)
    )
    leaderboard_limit: int = 10
    answer_order: str = "shuffle"
    question_category: Optional[int] = None
    question_difficulty: Optional[Difficulty] = None


@dataclass(frozen=True)
class GameSession:
    """
    State of one game.

    Sessions are never mutated in place: the transition functions in
    ``game_engine`` return a new session for every event.
    """
    questions: Tuple[Question, ...]
    current_index: int
    score: int
    correct_count: int
    answered_count: int
    status: GameStatus
    generation: int
    choice_orders: Tuple[Tuple[str, ...], ...] = ()
    submitted: bool = False
    loading: bool = False
    last_error: Optional[str] = None

    @property
    def is_over(self) -> bool:
        return self.status is not GameStatus.IN_PROGRESS

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]


@dataclass(frozen=True)
class LeaderboardEntry:
    """A player's submitted result."""
    username: str
    credential: str
    result: int
    timestamp: datetime

    def to_record(self) -> dict:
        """Convert to a score store document."""
        return {
            "username": self.username,
            "password_hash": self.credential,
            "score": self.result,
            "date": self.timestamp,
        }

    @classmethod
    def from_record(cls, record: dict) -> "LeaderboardEntry":
        """Build an entry from a score store document."""
        return cls(
            username=record["username"],
            credential=record.get("password_hash", ""),
            result=int(record["score"]),
            timestamp=record["date"],
        )


@dataclass(frozen=True)
class GameSnapshot:
    """Read-only view of a game handed to the presentation layer."""
    session: GameSession
    question: Optional[Question]
    choices: Tuple[str, ...]
    can_go_next: bool
    can_go_previous: bool
    leaderboard: Tuple[LeaderboardEntry, ...] = ()
