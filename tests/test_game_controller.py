"""
Unit tests for GameController event handling and async orchestration.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, Mock

from trivia.config_manager import ConfigManager
from trivia.errors import FetchError, StoreReadError, StoreWriteError
from trivia.game_controller import GameController
from trivia.game_engine import SortOrdering
from trivia.leaderboard import Leaderboard
from trivia.models import Difficulty, GameStatus
from trivia.question_source import QuestionSource, StaticQuestionSource
from trivia.score_store import MemoryScoreStore, ScoreStore
from tests.test_fixtures import GatedQuestionSource, TestFixtures, async_test


class TestGameControllerLifecycle(unittest.TestCase):
    """Test cases for starting games and answering questions."""

    def setUp(self):
        self.config_manager = ConfigManager()
        self.questions = TestFixtures.create_sample_questions()
        self.source = StaticQuestionSource(self.questions)
        self.store = MemoryScoreStore()
        self.leaderboard = Leaderboard(self.store)

    def _controller(self, source=None):
        return GameController(
            source or self.source, self.leaderboard, self.config_manager, ordering=SortOrdering()
        )

    def test_initial_state(self):
        controller = self._controller()
        snapshot = controller.snapshot()
        self.assertIsNone(snapshot.question)
        self.assertEqual(snapshot.session.score, 24)
        self.assertEqual(snapshot.session.status, GameStatus.IN_PROGRESS)
        self.assertEqual(controller.generation, 0)

    @async_test
    async def test_new_game_loads_batch(self):
        controller = self._controller()

        result = await controller.new_game()

        self.assertTrue(result['success'])
        self.assertEqual(len(controller.session.questions), 5)
        self.assertEqual(controller.session.generation, 1)
        self.assertFalse(controller.session.loading)
        self.assertEqual(controller.snapshot().question.text, "What color is the sky?")
        self.assertEqual(result['progress']['total_questions'], 5)

    @async_test
    async def test_new_game_resets_previous_state(self):
        controller = self._controller()
        await controller.new_game()
        controller.answer("Blue")
        controller.next()

        await controller.new_game()

        session = controller.session
        self.assertEqual(session.score, 24)
        self.assertEqual(session.correct_count, 0)
        self.assertEqual(session.answered_count, 0)
        self.assertEqual(session.current_index, 0)
        self.assertEqual(session.status, GameStatus.IN_PROGRESS)
        self.assertFalse(any(q.locked for q in session.questions))
        self.assertEqual(session.generation, 2)

    @async_test
    async def test_fetch_failure_gives_empty_batch_and_retryable_error(self):
        source = Mock(spec=QuestionSource)
        source.fetch_batch = AsyncMock(side_effect=FetchError("Question source unreachable"))
        controller = self._controller(source)

        result = await controller.new_game()

        self.assertFalse(result['success'])
        self.assertTrue(result['retryable'])
        self.assertIn("/play", result['user_message'])
        self.assertEqual(controller.session.questions, ())
        self.assertFalse(controller.session.loading)
        self.assertEqual(controller.session.last_error, "Question source unreachable")

        # Retry is an explicit new game
        source.fetch_batch = AsyncMock(return_value=self.questions)
        result = await controller.new_game()
        self.assertTrue(result['success'])
        self.assertIsNone(controller.session.last_error)

    @async_test
    async def test_unexpected_source_error_clears_loading(self):
        source = Mock(spec=QuestionSource)
        source.fetch_batch = AsyncMock(side_effect=RuntimeError("source bug"))
        controller = self._controller(source)

        result = await controller.new_game()

        self.assertFalse(result['success'])
        self.assertTrue(result['retryable'])
        self.assertFalse(controller.session.loading)
        self.assertEqual(controller.session.last_error, "source bug")

    @async_test
    async def test_stale_batch_is_discarded(self):
        source = GatedQuestionSource()
        controller = self._controller(source)

        first = controller.request_new_game()
        await asyncio.sleep(0)
        second = controller.request_new_game()
        await asyncio.sleep(0)
        self.assertTrue(controller.session.loading)

        newer = TestFixtures.create_uniform_questions(3, Difficulty.EASY)
        source.calls[1].set_result(newer)
        self.assertTrue((await second)['success'])

        source.calls[0].set_result(self.questions)
        result = await first

        self.assertTrue(result['stale'])
        self.assertEqual(controller.session.generation, 2)
        self.assertEqual([q.text for q in controller.session.questions], [q.text for q in newer])

    @async_test
    async def test_stale_fetch_error_is_discarded(self):
        source = GatedQuestionSource()
        controller = self._controller(source)

        first = controller.request_new_game()
        await asyncio.sleep(0)
        second = controller.request_new_game()
        await asyncio.sleep(0)
        source.calls[1].set_result(self.questions)
        await second

        source.calls[0].set_exception(FetchError("late failure"))
        result = await first

        self.assertTrue(result['stale'])
        self.assertIsNone(controller.session.last_error)
        self.assertEqual(len(controller.session.questions), 5)

    @async_test
    async def test_answer_and_idempotence(self):
        controller = self._controller()
        await controller.new_game()

        first = controller.answer("Blue")
        second = controller.answer("Red")

        self.assertTrue(first['success'])
        self.assertTrue(first['correct'])
        self.assertEqual(first['score'], 22)
        self.assertFalse(second['success'])
        self.assertEqual(controller.session.score, 22)
        self.assertEqual(controller.session.answered_count, 1)

    @async_test
    async def test_answer_by_position_uses_presented_order(self):
        controller = self._controller()
        await controller.new_game()
        self.assertEqual(controller.snapshot().choices, ("Blue", "Green", "Red", "Yellow"))

        result = controller.answer_by_position(3)

        self.assertTrue(result['success'])
        self.assertFalse(result['correct'])
        self.assertEqual(result['correct_answer'], "Blue")
        self.assertEqual(controller.session.score, 26)

    @async_test
    async def test_answer_by_invalid_position(self):
        controller = self._controller()
        await controller.new_game()
        for position in (0, 5, -1):
            with self.subTest(position=position):
                self.assertFalse(controller.answer_by_position(position)['success'])
        self.assertEqual(controller.session.answered_count, 0)

    def test_answer_without_game(self):
        controller = self._controller()
        result = controller.answer("anything")
        self.assertFalse(result['success'])
        self.assertIn("/play", result['user_message'])

    @async_test
    async def test_navigation(self):
        controller = self._controller()
        await controller.new_game()

        self.assertFalse(controller.previous())
        self.assertTrue(controller.next())
        self.assertEqual(controller.session.current_index, 1)
        self.assertTrue(controller.go_to(4))
        self.assertFalse(controller.next())
        self.assertFalse(controller.go_to(9))
        self.assertEqual(controller.session.current_index, 4)

    @async_test
    async def test_subscribers_receive_snapshots(self):
        controller = self._controller()
        received = []
        unsubscribe = controller.subscribe(received.append)

        await controller.new_game()
        controller.answer("Blue")
        unsubscribe()
        controller.next()

        # loading, loaded, answered
        self.assertEqual(len(received), 3)
        self.assertTrue(received[0].session.loading)
        self.assertEqual(received[-1].session.score, 22)

    @async_test
    async def test_failing_subscriber_does_not_break_events(self):
        controller = self._controller()
        controller.subscribe(Mock(side_effect=RuntimeError("render failed")))

        result = await controller.new_game()

        self.assertTrue(result['success'])

    def test_status_summary(self):
        controller = self._controller()
        self.assertIn("/play", controller.get_status_summary())


class TestGameControllerSubmission(unittest.TestCase):
    """Test cases for score submission and leaderboard refresh."""

    def setUp(self):
        self.config_manager = ConfigManager()
        self.config_manager.set_initial_score(8)
        self.questions = TestFixtures.create_uniform_questions(2, Difficulty.HARD)
        self.store = MemoryScoreStore()
        self.leaderboard = Leaderboard(self.store)
        self.controller = GameController(
            StaticQuestionSource(self.questions), self.leaderboard, self.config_manager, ordering=SortOrdering()
        )

    async def _win(self):
        await self.controller.new_game()
        result = self.controller.answer("Answer 0")
        self.assertEqual(result['status'], GameStatus.WON)

    @async_test
    async def test_submit_during_game_is_rejected(self):
        await self.controller.new_game()
        result = await self.controller.submit_score("alice", "secret")
        self.assertFalse(result['success'])
        self.assertIn("beat the game", result['user_message'])

    @async_test
    async def test_submit_after_loss_is_rejected(self):
        await self.controller.new_game()
        self.controller.answer("wrong")
        self.controller.next()
        self.controller.answer("wrong")
        self.assertEqual(self.controller.session.status, GameStatus.LOST)

        result = await self.controller.submit_score("alice", "secret")

        self.assertFalse(result['success'])
        self.assertEqual(await self.store.query("scores", "score"), [])

    @async_test
    async def test_submit_with_empty_username_makes_no_store_call(self):
        store = Mock(spec=ScoreStore)
        store.upsert = AsyncMock()
        self.controller.leaderboard = Leaderboard(store)
        await self._win()

        result = await self.controller.submit_score("", "secret")

        self.assertFalse(result['success'])
        self.assertIn("Username", result['error'])
        store.upsert.assert_not_called()
        self.assertFalse(self.controller.session.submitted)

    @async_test
    async def test_successful_submit_marks_session_and_refreshes_leaderboard(self):
        await self._win()

        result = await self.controller.submit_score("alice", "secret")
        await self.controller.wait_for_pending()

        self.assertTrue(result['success'])
        self.assertTrue(self.controller.session.submitted)
        leaderboard = self.controller.snapshot().leaderboard
        self.assertEqual([entry.username for entry in leaderboard], ["alice"])
        self.assertEqual(leaderboard[0].result, 1)

        again = await self.controller.submit_score("alice", "secret")
        self.assertFalse(again['success'])

    @async_test
    async def test_store_write_failure_allows_retry(self):
        await self._win()
        self.store.upsert = AsyncMock(side_effect=StoreWriteError("disk full"))

        result = await self.controller.submit_score("alice", "secret")

        self.assertFalse(result['success'])
        self.assertTrue(result['retryable'])
        self.assertFalse(self.controller.session.submitted)

        del self.store.upsert
        retry = await self.controller.submit_score("alice", "secret")
        self.assertTrue(retry['success'])
        self.assertTrue(self.controller.session.submitted)

    @async_test
    async def test_concurrent_submits_write_once(self):
        await self._win()
        original_upsert = self.store.upsert

        async def yielding_upsert(*args):
            await asyncio.sleep(0)
            await original_upsert(*args)

        self.store.upsert = yielding_upsert
        results = await asyncio.gather(
            self.controller.submit_score("alice", "pw"),
            self.controller.submit_score("mallory", "pw")
        )

        self.assertEqual([result['success'] for result in results], [True, False])
        self.assertIn("already in progress", results[1]['error'])
        records = await self.store.query("scores", "score")
        self.assertEqual([record["username"] for record in records], ["alice"])
        self.assertTrue(self.controller.session.submitted)
        await self.controller.wait_for_pending()

    @async_test
    async def test_request_submit_is_fire_and_forget(self):
        await self._win()

        task = self.controller.request_submit("bob", "pw")
        self.assertFalse(self.controller.session.submitted)
        result = await task

        self.assertTrue(result['success'])
        self.assertTrue(self.controller.session.submitted)

    @async_test
    async def test_submit_result_for_superseded_game_is_discarded(self):
        await self._win()
        original_upsert = self.store.upsert

        async def slow_upsert(*args):
            await self.controller.new_game()
            await original_upsert(*args)

        self.store.upsert = slow_upsert
        result = await self.controller.submit_score("carol", "pw")

        self.assertTrue(result['stale'])
        self.assertFalse(self.controller.session.submitted)
        self.assertEqual(self.controller.session.generation, 2)

    @async_test
    async def test_leaderboard_read_failure_serves_cached_entries(self):
        await self._win()
        await self.controller.submit_score("alice", "secret")
        await self.controller.wait_for_pending()
        self.store.query = AsyncMock(side_effect=StoreReadError("offline"))

        entries = await self.controller.refresh_leaderboard()

        self.assertEqual([entry.username for entry in entries], ["alice"])

    @async_test
    async def test_verify_player(self):
        await self._win()
        await self.controller.submit_score("alice", "secret")

        self.assertTrue((await self.controller.verify_player("alice", "secret"))['success'])
        self.assertFalse((await self.controller.verify_player("alice", "wrong"))['success'])


if __name__ == '__main__':
    unittest.main()
