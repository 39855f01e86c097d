"""
Game controller for the Trivia Game.
Owns the state of one game and applies UI events to it.
"""
import asyncio
import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .config_manager import ConfigManager
from .errors import FetchError, InvalidSessionStateError, StoreWriteError, ValidationError
from .game_engine import (
    AnswerOrdering,
    GameLifecycleLogger,
    apply_answer,
    build_snapshot,
    choices_for,
    empty_session,
    get_answer_ordering,
    go_to_question,
    new_session,
    next_question,
    previous_question,
)
from .leaderboard import Leaderboard
from .models import GameSession, GameSnapshot, GameStatus, LeaderboardEntry
from .question_source import QuestionSource

Subscriber = Callable[[GameSnapshot], Any]


class GameController:
    """
    Orchestrates a single trivia game.

    UI events mutate the controller's session through the pure transitions in
    ``game_engine``; after every change a snapshot is published to
    subscribers. Question fetches and score store calls run as asyncio tasks
    tagged with the session generation they were started for, and results
    that arrive after a newer game has started are discarded.
    """

    def __init__(
        self,
        question_source: QuestionSource,
        leaderboard: Leaderboard,
        config_manager: ConfigManager,
        ordering: Optional[AnswerOrdering] = None
    ):
        """
        Initialize the game controller.

        Args:
            question_source: Supplies question batches
            leaderboard: Stores and reads player results
            config_manager: Source of game settings
            ordering: Answer ordering strategy; built from settings if None
        """
        self.logger = logging.getLogger(__name__)
        self.question_source = question_source
        self.leaderboard = leaderboard
        self.config_manager = config_manager
        self.settings = config_manager.get_game_settings()
        self.ordering = ordering or get_answer_ordering(self.settings.answer_order)

        self._generation = 0
        self._session = empty_session(self.settings, self._generation)
        self._leaderboard_entries: List[LeaderboardEntry] = []
        self._subscribers: List[Subscriber] = []
        self._pending: set = set()
        self._submitting_generation: Optional[int] = None

        self.logger.info("GameController initialized")

    @property
    def session(self) -> GameSession:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> GameSnapshot:
        """Current state as seen by the presentation layer."""
        return build_snapshot(self._session, self._leaderboard_entries)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback that receives a snapshot after every state change.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"Snapshot subscriber {callback!r} failed: {e}", exc_info=True)

    def _set_session(self, session: GameSession) -> None:
        self._session = session
        self._publish()

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled fetch and store call has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Game lifecycle

    async def new_game(self) -> Dict[str, Any]:
        """
        Start a new game: reset state and fetch a fresh question batch.

        Returns:
            Dictionary with operation results and error information
        """
        self._generation += 1
        generation = self._generation
        self._set_session(empty_session(self.settings, generation, loading=True))

        try:
            questions = await self.question_source.fetch_batch(
                self.settings.batch_size,
                category=self.settings.question_category,
                difficulty=self.settings.question_difficulty
            )
        except Exception as e:
            if generation != self._generation:
                GameLifecycleLogger.log_stale_result(generation, self._generation, "question fetch error")
                return {'success': False, 'stale': True, 'error': str(e)}
            self.logger.error(
                f"Failed to fetch questions for generation {generation}: {e}",
                exc_info=not isinstance(e, FetchError),
                extra={
                    'event_type': 'question_fetch_failed',
                    'generation': generation,
                    'timestamp': time.time()
                }
            )
            self._set_session(empty_session(self.settings, generation, last_error=str(e)))
            return {
                'success': False,
                'error': str(e),
                'retryable': True,
                'user_message': "❌ Could not load trivia questions. Use `/play` to try again."
            }

        if generation != self._generation:
            GameLifecycleLogger.log_stale_result(generation, self._generation, "question batch")
            return {'success': False, 'stale': True, 'error': "Superseded by a newer game"}

        self._set_session(new_session(self.settings, questions, generation, self.ordering))
        return {
            'success': True,
            'message': f"New game started with {len(questions)} questions",
            'progress': self.get_game_progress()
        }

    def request_new_game(self) -> asyncio.Task:
        """Start a new game without waiting for the question batch."""
        return self._schedule(self.new_game())

    # Answering

    def answer(self, choice: str) -> Dict[str, Any]:
        """
        Answer the current question.

        Args:
            choice: The chosen answer text

        Returns:
            Dictionary with correctness, the new score and game status
        """
        before = self._session
        after = apply_answer(before, self.settings, choice)

        if after is before:
            if before.is_over:
                user_message = "❌ The game is over. Use `/play` to start a new one."
            elif before.current_question is None:
                user_message = "❌ No question loaded. Use `/play` to start a game."
            else:
                user_message = "❌ This question has already been answered."
            return {'success': False, 'error': "Answer ignored", 'user_message': user_message}

        self._set_session(after)
        question = after.questions[before.current_index]
        return {
            'success': True,
            'correct': question.correct_answer == choice,
            'correct_answer': question.correct_answer,
            'score': after.score,
            'status': after.status,
            'game_over': after.is_over
        }

    def answer_by_position(self, position: int) -> Dict[str, Any]:
        """
        Answer the current question by its 1-based position in the presented choices.
        """
        choices = choices_for(self._session)
        if not 1 <= position <= len(choices):
            return {
                'success': False,
                'error': f"Invalid choice position {position}",
                'user_message': f"❌ Pick a number between 1 and {len(choices)}." if choices
                else "❌ No question loaded. Use `/play` to start a game."
            }
        return self.answer(choices[position - 1])

    # Navigation

    def next(self) -> bool:
        """Move to the next question. Returns False when already on the last one."""
        after = next_question(self._session)
        if after is self._session:
            return False
        self._set_session(after)
        return True

    def previous(self) -> bool:
        """Move to the previous question. Returns False when already on the first one."""
        after = previous_question(self._session)
        if after is self._session:
            return False
        self._set_session(after)
        return True

    def go_to(self, index: int) -> bool:
        after = go_to_question(self._session, index)
        if after is self._session:
            return False
        self._set_session(after)
        return True

    # Leaderboard

    async def submit_score(self, username: str, credential: str) -> Dict[str, Any]:
        """
        Submit the finished game's result to the leaderboard.

        Only a won game can be submitted, and only once per game.

        Returns:
            Dictionary with operation results and error information
        """
        session = self._session
        try:
            if session.status is GameStatus.IN_PROGRESS:
                raise InvalidSessionStateError("Game is still in progress")
            if session.status is GameStatus.LOST:
                raise InvalidSessionStateError("Only won games can be submitted")
            if session.submitted:
                raise InvalidSessionStateError("Score already submitted for this game")
            if self._submitting_generation == session.generation:
                raise InvalidSessionStateError("Score submission already in progress for this game")
        except InvalidSessionStateError as e:
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ {e}. You can only submit your score if you beat the game!"
                if session.status is not GameStatus.WON else f"❌ {e}."
            }

        generation = session.generation
        self._submitting_generation = generation
        try:
            entry = await self.leaderboard.submit(username, credential, session.correct_count)
        except ValidationError as e:
            return {'success': False, 'error': str(e), 'user_message': f"❌ {e}"}
        except StoreWriteError as e:
            self.logger.error(f"Score submission failed for generation {generation}: {e}")
            return {
                'success': False,
                'error': str(e),
                'retryable': True,
                'user_message': "❌ Could not save your score. Please try again."
            }
        finally:
            if self._submitting_generation == generation:
                self._submitting_generation = None

        if generation != self._generation:
            GameLifecycleLogger.log_stale_result(generation, self._generation, "score submission")
            return {'success': True, 'stale': True, 'message': f"Score saved for {entry.username}"}

        self._set_session(dataclasses.replace(self._session, submitted=True))
        self.request_leaderboard_refresh()
        return {
            'success': True,
            'message': f"Score saved for {entry.username}",
            'user_message': "✅ Successfully submitted!"
        }

    def request_submit(self, username: str, credential: str) -> asyncio.Task:
        """Submit the score without waiting for the store."""
        return self._schedule(self.submit_score(username, credential))

    async def refresh_leaderboard(self) -> List[LeaderboardEntry]:
        """Reload the leaderboard; store failures fall back to the cached list."""
        entries = await self.leaderboard.fetch_top(self.settings.leaderboard_limit)
        self._leaderboard_entries = entries
        self._publish()
        return list(entries)

    def request_leaderboard_refresh(self) -> asyncio.Task:
        return self._schedule(self.refresh_leaderboard())

    async def verify_player(self, username: str, credential: str) -> Dict[str, Any]:
        """Check a returning player's username and password."""
        if await self.leaderboard.verify(username, credential):
            return {'success': True, 'user_message': f"✅ Welcome back, {username.strip()}!"}
        return {'success': False, 'error': "Invalid credentials", 'user_message': "❌ Unknown username or wrong password."}

    # Reporting

    def get_game_progress(self) -> Dict[str, Any]:
        """
        Get progress information for the current game.

        Returns:
            Dictionary with progress info
        """
        session = self._session
        return {
            'generation': session.generation,
            'current_question': session.current_index + 1 if session.questions else 0,
            'total_questions': len(session.questions),
            'score': session.score,
            'target_score': self.settings.target_score,
            'correct_count': session.correct_count,
            'answered_count': session.answered_count,
            'status': session.status.value,
            'submitted': session.submitted,
            'loading': session.loading,
            'last_error': session.last_error
        }

    def get_status_summary(self) -> str:
        """Human-readable one-line summary of the game."""
        session = self._session
        if session.loading:
            return "Loading questions..."
        if not session.questions:
            return "No game in progress. Use /play to start."
        if session.status is GameStatus.WON:
            return f"You Win! You answered {session.correct_count} correctly."
        if session.status is GameStatus.LOST:
            return f"You Lose. You answered {session.correct_count} correctly."
        return (
            f"Question {session.current_index + 1}/{len(session.questions)} | "
            f"Score: {session.score} | Answered: {session.answered_count} | "
            f"Correct: {session.correct_count}"
        )
