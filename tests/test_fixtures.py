"""
Test fixtures and sample data for Trivia Game tests.
"""
import asyncio
import functools
from typing import Dict, List
from unittest.mock import Mock, AsyncMock
import discord

from trivia.models import Question, Difficulty, GameSettings
from trivia.question_source import QuestionSource


def async_test(coro):
    """Decorator to run async test methods on a fresh event loop."""
    @functools.wraps(coro)
    def wrapper(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(coro(self))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
    return wrapper


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def make_question(
        difficulty: Difficulty = Difficulty.MEDIUM,
        text: str = "What is 2+2?",
        correct: str = "4",
        incorrect=("3", "5", "22"),
        category: str = "Mathematics"
    ) -> Question:
        return Question(
            category=category,
            difficulty=difficulty,
            text=text,
            correct_answer=correct,
            incorrect_answers=tuple(incorrect)
        )

    @staticmethod
    def create_sample_questions() -> List[Question]:
        """Create a mixed-difficulty batch for testing."""
        return [
            TestFixtures.make_question(Difficulty.EASY, "What color is the sky?", "Blue", ("Red", "Green", "Yellow"), "General Knowledge"),
            TestFixtures.make_question(Difficulty.MEDIUM, "What is the capital of France?", "Paris", ("London", "Berlin", "Madrid"), "Geography"),
            TestFixtures.make_question(Difficulty.HARD, "What is 17 * 23?", "391", ("401", "381", "371")),
            TestFixtures.make_question(Difficulty.EASY, "How many days in a week?", "7", ("5", "6", "8")),
            TestFixtures.make_question(Difficulty.MEDIUM, "What is the largest planet?", "Jupiter", ("Earth", "Mars", "Saturn"), "Science"),
        ]

    @staticmethod
    def create_uniform_questions(count: int, difficulty: Difficulty) -> List[Question]:
        """Create a batch where every question has the same difficulty."""
        return [
            TestFixtures.make_question(difficulty, f"Question {i}?", f"Answer {i}", (f"Wrong {i}a", f"Wrong {i}b", f"Wrong {i}c"))
            for i in range(count)
        ]

    @staticmethod
    def create_sample_settings(**overrides) -> GameSettings:
        settings = GameSettings()
        for key, value in overrides.items():
            setattr(settings, key, value)
        return settings

    @staticmethod
    def create_opentdb_payload(count: int = 2) -> Dict:
        """Create an Open Trivia DB style response envelope."""
        results = [
            {
                "type": "multiple",
                "difficulty": "medium",
                "category": "Entertainment: Video Games",
                "question": "Which company made &quot;The Legend of Zelda&quot;?",
                "correct_answer": "Nintendo",
                "incorrect_answers": ["Sega", "Sony", "Atari"]
            },
            {
                "type": "boolean",
                "difficulty": "easy",
                "category": "Science &amp; Nature",
                "question": "Water boils at 100&deg;C at sea level.",
                "correct_answer": "True",
                "incorrect_answers": ["False"]
            },
            {
                "type": "multiple",
                "difficulty": "hard",
                "category": "History",
                "question": "In which year did the Byzantine Empire fall?",
                "correct_answer": "1453",
                "incorrect_answers": ["1204", "1071", "1492"]
            },
        ]
        return {"response_code": 0, "results": results[:count]}


class GatedQuestionSource(QuestionSource):
    """Question source whose fetches complete only when the test releases them."""

    def __init__(self):
        self.calls = []

    async def fetch_batch(self, amount, category=None, difficulty=None):
        gate = asyncio.get_running_loop().create_future()
        self.calls.append(gate)
        return await gate


class MockDiscordObjects:
    """Mock Discord objects for testing bot functionality."""

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345, user_id: int = 67890) -> Mock:
        """Create mock Discord interaction whose response tracks whether it was used."""
        interaction = Mock(spec=discord.Interaction)
        interaction.channel_id = channel_id
        interaction.user = Mock()
        interaction.user.id = user_id
        interaction.response = Mock()
        interaction.response.is_done.return_value = False

        async def mark_done(*args, **kwargs):
            interaction.response.is_done.return_value = True

        interaction.response.send_message = AsyncMock(side_effect=mark_done)
        interaction.response.defer = AsyncMock(side_effect=mark_done)
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction


class TestDataValidation:
    """Validation helpers for test assertions."""

    @staticmethod
    def sent_embed(send_mock: AsyncMock) -> discord.Embed:
        """Return the embed passed to the last call of a send mock."""
        return send_mock.call_args.kwargs["embed"]

    @staticmethod
    def field_values(embed: discord.Embed) -> Dict[str, str]:
        return {field.name: field.value for field in embed.fields}
