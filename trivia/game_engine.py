"""
Game engine core logic for the Trivia Game.
Handles answer ordering, scoring transitions and question navigation.

Every transition takes a GameSession and returns a new one; nothing here
mutates its arguments or performs IO.
"""
import dataclasses
import logging
import math
import random
import time
from typing import List, Optional, Sequence, Tuple

from .models import (
    AnswerState,
    Difficulty,
    GameSession,
    GameSettings,
    GameSnapshot,
    GameStatus,
    LeaderboardEntry,
    Question,
)

logger = logging.getLogger(__name__)


class GameLifecycleLogger:
    """Structured logging for game lifecycle events."""

    @staticmethod
    def log_game_started(generation: int, question_count: int, initial_score: int) -> None:
        logger.info(
            f"Game lifecycle: STARTED - Generation {generation}, {question_count} questions, score {initial_score}",
            extra={
                'event_type': 'game_started',
                'generation': generation,
                'question_count': question_count,
                'initial_score': initial_score,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_answer(generation: int, index: int, difficulty: Difficulty, correct: bool, score: int) -> None:
        logger.debug(
            f"Game lifecycle: ANSWER - Generation {generation}, Question {index + 1}, "
            f"{difficulty.value}, {'correct' if correct else 'wrong'}, score now {score}",
            extra={
                'event_type': 'answer_given',
                'generation': generation,
                'question_index': index,
                'difficulty': difficulty.value,
                'correct': correct,
                'score': score,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_ignored_answer(generation: int, index: int, reason: str) -> None:
        logger.debug(
            f"Game lifecycle: ANSWER_IGNORED - Generation {generation}, Question {index + 1} ({reason})",
            extra={
                'event_type': 'answer_ignored',
                'generation': generation,
                'question_index': index,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_game_over(generation: int, status: GameStatus, score: int, correct_count: int, answered_count: int) -> None:
        logger.info(
            f"Game lifecycle: GAME_OVER - Generation {generation}, {status.value}, "
            f"score {score}, {correct_count}/{answered_count} correct",
            extra={
                'event_type': 'game_over',
                'generation': generation,
                'status': status.value,
                'score': score,
                'correct_count': correct_count,
                'answered_count': answered_count,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_stale_result(result_generation: int, current_generation: int, operation: str) -> None:
        logger.warning(
            f"Game lifecycle: STALE_RESULT - {operation} for generation {result_generation} "
            f"discarded (current generation {current_generation})",
            extra={
                'event_type': 'stale_result_discarded',
                'operation': operation,
                'result_generation': result_generation,
                'current_generation': current_generation,
                'timestamp': time.time()
            }
        )


class AnswerOrdering:
    """Strategy that decides the order answer choices are presented in."""

    name = "base"

    def order(self, choices: Sequence[str]) -> List[str]:
        raise NotImplementedError


class ShuffleOrdering(AnswerOrdering):
    """Uniformly random order (Fisher-Yates)."""

    name = "shuffle"

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def order(self, choices: Sequence[str]) -> List[str]:
        shuffled = list(choices)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self._rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled


class SortOrdering(AnswerOrdering):
    """
    Deterministic order: numeric ascending when every choice is a finite
    number, lexicographic otherwise.
    """

    name = "sort"

    def order(self, choices: Sequence[str]) -> List[str]:
        numbers = [_finite_number(choice) for choice in choices]
        if all(number is not None for number in numbers):
            # Equal values order by text
            return [choice for _, choice in sorted(zip(numbers, choices))]
        return sorted(choices)


def _finite_number(text: str) -> Optional[float]:
    if "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def get_answer_ordering(name: str, rng: Optional[random.Random] = None) -> AnswerOrdering:
    """
    Look up an ordering strategy by its configured name.

    Raises:
        ValueError: If the name is unknown
    """
    if name == ShuffleOrdering.name:
        return ShuffleOrdering(rng)
    if name == SortOrdering.name:
        return SortOrdering()
    raise ValueError(f"Unknown answer ordering: {name}")


def score_delta(settings: GameSettings, difficulty: Difficulty) -> int:
    """Magnitude of the score change for answering a question of this difficulty."""
    return settings.difficulty_deltas[difficulty]


def empty_session(settings: GameSettings, generation: int, loading: bool = False,
                  last_error: Optional[str] = None) -> GameSession:
    """A session with no questions, used while a batch loads or after a failed fetch."""
    return GameSession(
        questions=(),
        current_index=0,
        score=settings.initial_score,
        correct_count=0,
        answered_count=0,
        status=GameStatus.IN_PROGRESS,
        generation=generation,
        loading=loading,
        last_error=last_error
    )


def new_session(
    settings: GameSettings,
    questions: Sequence[Question],
    generation: int,
    ordering: AnswerOrdering
) -> GameSession:
    """
    Start a fresh game over a question batch.

    Per-question answer state is reset and each question's choice order is
    fixed for the lifetime of the session.
    """
    fresh = tuple(
        dataclasses.replace(q, answer_state=AnswerState.UNANSWERED, locked=False, chosen_answer=None)
        for q in questions
    )
    choice_orders = tuple(tuple(ordering.order(q.choices())) for q in fresh)
    session = dataclasses.replace(
        empty_session(settings, generation),
        questions=fresh,
        choice_orders=choice_orders
    )
    GameLifecycleLogger.log_game_started(generation, len(fresh), settings.initial_score)
    return session


def _resolve_status(session: GameSession, settings: GameSettings) -> GameStatus:
    # Exact equality only: overshooting the target never wins.
    if session.score == settings.target_score:
        return GameStatus.WON
    if session.answered_count >= len(session.questions):
        return GameStatus.LOST
    return GameStatus.IN_PROGRESS


def apply_answer(
    session: GameSession,
    settings: GameSettings,
    choice: str,
    index: Optional[int] = None
) -> GameSession:
    """
    Apply a chosen answer to a question (the current one by default).

    The question is locked, correctness is decided and the score moves by
    the difficulty delta: down when correct, up when wrong. Answers on a
    locked question, an out-of-range index or a finished game are ignored
    and the session is returned unchanged.
    """
    if index is None:
        index = session.current_index

    if session.is_over:
        GameLifecycleLogger.log_ignored_answer(session.generation, index, "game over")
        return session
    if not 0 <= index < len(session.questions):
        GameLifecycleLogger.log_ignored_answer(session.generation, index, "no such question")
        return session

    question = session.questions[index]
    if question.locked:
        GameLifecycleLogger.log_ignored_answer(session.generation, index, "already answered")
        return session

    correct = choice == question.correct_answer
    delta = score_delta(settings, question.difficulty)
    answered_question = dataclasses.replace(
        question,
        answer_state=AnswerState.CORRECT if correct else AnswerState.WRONG,
        locked=True,
        chosen_answer=choice
    )
    questions = session.questions[:index] + (answered_question,) + session.questions[index + 1:]

    updated = dataclasses.replace(
        session,
        questions=questions,
        score=session.score - delta if correct else session.score + delta,
        correct_count=session.correct_count + (1 if correct else 0),
        answered_count=session.answered_count + 1
    )
    GameLifecycleLogger.log_answer(updated.generation, index, question.difficulty, correct, updated.score)

    status = _resolve_status(updated, settings)
    if status is not GameStatus.IN_PROGRESS:
        updated = dataclasses.replace(updated, status=status)
        GameLifecycleLogger.log_game_over(
            updated.generation, status, updated.score, updated.correct_count, updated.answered_count
        )
    return updated


def can_go_next(session: GameSession) -> bool:
    return session.current_index < len(session.questions) - 1


def can_go_previous(session: GameSession) -> bool:
    return session.current_index > 0


def next_question(session: GameSession) -> GameSession:
    """Move to the next question; no-op on the last one."""
    if not can_go_next(session):
        return session
    return dataclasses.replace(session, current_index=session.current_index + 1)


def previous_question(session: GameSession) -> GameSession:
    """Move to the previous question; no-op on the first one."""
    if not can_go_previous(session):
        return session
    return dataclasses.replace(session, current_index=session.current_index - 1)


def go_to_question(session: GameSession, index: int) -> GameSession:
    """Jump to a question by index; out-of-range indices are ignored."""
    if not 0 <= index < len(session.questions):
        return session
    return dataclasses.replace(session, current_index=index)


def choices_for(session: GameSession, index: Optional[int] = None) -> Tuple[str, ...]:
    """The presentation-ordered choices of a question (the current one by default)."""
    if index is None:
        index = session.current_index
    if not 0 <= index < len(session.choice_orders):
        return ()
    return session.choice_orders[index]


def build_snapshot(session: GameSession, leaderboard: Sequence[LeaderboardEntry] = ()) -> GameSnapshot:
    """Freeze the session into the view handed to the presentation layer."""
    return GameSnapshot(
        session=session,
        question=session.current_question,
        choices=choices_for(session),
        can_go_next=can_go_next(session),
        can_go_previous=can_go_previous(session),
        leaderboard=tuple(leaderboard)
    )
