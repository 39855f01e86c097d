"""
Leaderboard backed by a score store.

Entries are keyed by username, so a later submission from the same player
replaces the earlier one. Lower results rank higher.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from werkzeug.security import check_password_hash, generate_password_hash

from .errors import StoreReadError, StoreWriteError, ValidationError
from .models import LeaderboardEntry
from .score_store import ASCENDING, ScoreStore

SCORES_COLLECTION = "scores"


class Leaderboard:
    """Submits player results and reads back the top of the table."""

    def __init__(
        self,
        store: ScoreStore,
        limit: int = 10,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the leaderboard.

        Args:
            store: Document store holding the ``scores`` collection
            limit: Default number of entries returned by fetch_top
            clock: Returns the submission timestamp; UTC now by default
        """
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.limit = limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cached: List[LeaderboardEntry] = []

    @property
    def cached(self) -> List[LeaderboardEntry]:
        """Last successfully fetched leaderboard."""
        return list(self._cached)

    async def submit(self, username: str, credential: str, result: int) -> LeaderboardEntry:
        """
        Save a player's result.

        The credential is stored as a salted hash, never in cleartext.

        Args:
            username: Player name, unique per store
            credential: Player password
            result: Number of correctly answered questions

        Returns:
            The stored entry

        Raises:
            ValidationError: If username or credential is empty (no store call is made)
            StoreWriteError: If the store rejected the write
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username cannot be empty")
        if not credential:
            raise ValidationError("Password cannot be empty")

        entry = LeaderboardEntry(
            username=username,
            credential=generate_password_hash(credential),
            result=result,
            timestamp=self._clock()
        )
        try:
            await self.store.upsert(SCORES_COLLECTION, username, entry.to_record())
        except StoreWriteError:
            raise
        except Exception as e:
            self.logger.error(f"Unexpected error saving score for {username}: {e}")
            raise StoreWriteError(f"Could not save score: {e}") from e

        self.logger.info(f"Recorded score {result} for {username}")
        return entry

    async def fetch_top(self, n: Optional[int] = None) -> List[LeaderboardEntry]:
        """
        Fetch the best entries, ordered by result ascending.

        A store failure is logged and the last cached list is returned instead.

        Args:
            n: Maximum number of entries; defaults to the configured limit

        Returns:
            At most n entries sorted ascending by result
        """
        limit = self.limit if n is None else n
        try:
            records = await self.store.query(SCORES_COLLECTION, "score", ASCENDING, limit)
            entries = [LeaderboardEntry.from_record(record) for record in records]
        except (StoreReadError, KeyError, ValueError, TypeError) as e:
            self.logger.warning(f"Leaderboard fetch failed, serving cached list: {e}")
            return self.cached[:limit]

        # Re-sort and trim in case the store ignored ordering or limit
        entries = sorted(entries, key=lambda entry: entry.result)[:limit]
        self._cached = entries
        self.logger.debug(f"Fetched {len(entries)} leaderboard entries")
        return list(entries)

    async def verify(self, username: str, credential: str) -> bool:
        """
        Check a player's password against their stored entry.

        Returns:
            True if the player exists and the password matches, False otherwise
        """
        username = (username or "").strip()
        if not username or not credential:
            return False
        try:
            record = await self.store.get(SCORES_COLLECTION, username)
        except StoreReadError as e:
            self.logger.warning(f"Could not verify {username}: {e}")
            return False
        if not record or not record.get("password_hash"):
            return False
        return check_password_hash(record["password_hash"], credential)


def format_leaderboard(entries: Sequence[LeaderboardEntry]) -> List[str]:
    """
    Render entries as display lines, e.g. ``#1 | Score: 3 | 10/19/2026 | alice``.

    Dates are shown in the server's local timezone.
    """
    return [
        f"#{rank} | Score: {entry.result} | {entry.timestamp.astimezone().strftime('%m/%d/%Y')} | {entry.username}"
        for rank, entry in enumerate(entries, start=1)
    ]
