"""
Question sources for the Trivia Game.

Fetches batches of trivia questions from the Open Trivia Database and
validates the payload before it reaches the game.
"""
import html
import logging
from typing import List, Optional, Sequence

import httpx

from .errors import FetchError
from .models import Question, Difficulty

logger = logging.getLogger(__name__)

# Open Trivia DB response codes
RESPONSE_CODE_MESSAGES = {
    1: "Not enough questions for the requested query",
    2: "Invalid parameter",
    3: "Session token not found",
    4: "Session token exhausted",
    5: "Rate limited, too many requests",
}


class QuestionSource:
    """Interface for anything that can supply a batch of questions."""

    async def fetch_batch(
        self,
        amount: int,
        category: Optional[int] = None,
        difficulty: Optional[Difficulty] = None
    ) -> List[Question]:
        raise NotImplementedError


class OpenTriviaSource(QuestionSource):
    """Question source backed by the Open Trivia Database HTTP API."""

    def __init__(
        self,
        url: str = "https://opentdb.com/api.php",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the source.

        Args:
            url: API endpoint
            timeout: Request timeout in seconds
            client: Optional shared client; one is created per request otherwise
        """
        self.url = url
        self.timeout = timeout
        self._client = client

    async def fetch_batch(
        self,
        amount: int,
        category: Optional[int] = None,
        difficulty: Optional[Difficulty] = None
    ) -> List[Question]:
        """
        Fetch a batch of questions.

        Args:
            amount: Number of questions to request
            category: Optional category id
            difficulty: Optional difficulty filter

        Returns:
            List of Question objects

        Raises:
            FetchError: On network failure, bad status or malformed payload
        """
        params = {"amount": amount}
        if category is not None:
            params["category"] = category
        if difficulty is not None:
            params["difficulty"] = difficulty.value

        logger.debug(f"Requesting {amount} questions from {self.url}")
        try:
            if self._client is not None:
                response = await self._client.get(self.url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"Question source returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Question source unreachable: {e}") from e
        except ValueError as e:
            raise FetchError(f"Question source returned invalid JSON: {e}") from e

        questions = parse_question_payload(payload)
        logger.info(f"Fetched {len(questions)} questions from {self.url}")
        return questions


class StaticQuestionSource(QuestionSource):
    """Serves questions from an in-memory list, for offline development and tests."""

    def __init__(self, questions: Sequence[Question]):
        self._questions = list(questions)

    async def fetch_batch(
        self,
        amount: int,
        category: Optional[int] = None,
        difficulty: Optional[Difficulty] = None
    ) -> List[Question]:
        questions = self._questions
        if difficulty is not None:
            questions = [q for q in questions if q.difficulty is difficulty]
        if not questions:
            raise FetchError("No questions available")
        return questions[:amount]


def validate_question_record(record: dict, index: int) -> None:
    """
    Validate one question record from the API.

    Expected structure:
    {
        "category": str,
        "difficulty": "easy" | "medium" | "hard",
        "question": str,
        "correct_answer": str,
        "incorrect_answers": [str, ...]
    }

    Raises:
        FetchError: If the record does not match the structure
    """
    if not isinstance(record, dict):
        raise FetchError(f"Question {index} must be an object")

    for key in ("category", "difficulty", "question", "correct_answer"):
        if key not in record:
            raise FetchError(f"Question {index} missing '{key}' field")
        if not isinstance(record[key], str):
            raise FetchError(f"Question {index} '{key}' field must be a string")

    if record["difficulty"] not in {d.value for d in Difficulty}:
        raise FetchError(f"Question {index} has unknown difficulty '{record['difficulty']}'")

    incorrect = record.get("incorrect_answers")
    if not isinstance(incorrect, list) or not all(isinstance(a, str) for a in incorrect):
        raise FetchError(f"Question {index} 'incorrect_answers' field must be an array of strings")


def parse_question_payload(payload: dict) -> List[Question]:
    """
    Parse an Open Trivia DB response envelope into Question objects.

    Text fields are HTML-unescaped since the API encodes entities by default.

    Raises:
        FetchError: If the envelope or any record is malformed
    """
    if not isinstance(payload, dict):
        raise FetchError("Question payload must be a JSON object")

    response_code = payload.get("response_code")
    if response_code != 0:
        reason = RESPONSE_CODE_MESSAGES.get(response_code, f"unexpected response code {response_code}")
        raise FetchError(f"Question source rejected the request: {reason}")

    results = payload.get("results")
    if not isinstance(results, list):
        raise FetchError("Question payload 'results' must be an array")
    if not results:
        raise FetchError("Question payload contained no questions")

    questions = []
    for i, record in enumerate(results):
        validate_question_record(record, i)
        questions.append(Question(
            category=html.unescape(record["category"]),
            difficulty=Difficulty(record["difficulty"]),
            text=html.unescape(record["question"]),
            correct_answer=html.unescape(record["correct_answer"]),
            incorrect_answers=tuple(html.unescape(a) for a in record["incorrect_answers"])
        ))

    return questions
