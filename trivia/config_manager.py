"""
Configuration manager for Trivia Game settings and parameters.
"""
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path

from .models import GameSettings, Difficulty, DEFAULT_DIFFICULTY_DELTAS


class ConfigManager:
    """Manages game configuration settings and external service parameters."""

    # Default configuration values
    DEFAULT_INITIAL_SCORE = 24
    DEFAULT_TARGET_SCORE = 0
    DEFAULT_BATCH_SIZE = 10
    DEFAULT_LEADERBOARD_LIMIT = 10
    DEFAULT_ANSWER_ORDER = "shuffle"
    DEFAULT_QUESTION_URL = "https://opentdb.com/api.php"
    DEFAULT_REQUEST_TIMEOUT = 10.0
    DEFAULT_STORE_PATH = "./data/"

    ANSWER_ORDERS = ("shuffle", "sort")

    # Validation limits
    MIN_BATCH_SIZE = 1
    MAX_BATCH_SIZE = 50  # Open Trivia DB caps a single request at 50
    MIN_INITIAL_SCORE = 1
    MAX_INITIAL_SCORE = 1000
    MIN_LEADERBOARD_LIMIT = 1
    MAX_LEADERBOARD_LIMIT = 100
    MIN_REQUEST_TIMEOUT = 1.0
    MAX_REQUEST_TIMEOUT = 60.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._game_settings = GameSettings()
        self._question_url = self.DEFAULT_QUESTION_URL
        self._request_timeout = self.DEFAULT_REQUEST_TIMEOUT
        self._store_path = self.DEFAULT_STORE_PATH

    def get_game_settings(self) -> GameSettings:
        """
        Get a copy of the current game settings.

        Returns:
            GameSettings object with current configuration
        """
        return GameSettings(
            initial_score=self._game_settings.initial_score,
            target_score=self._game_settings.target_score,
            batch_size=self._game_settings.batch_size,
            difficulty_deltas=dict(self._game_settings.difficulty_deltas),
            leaderboard_limit=self._game_settings.leaderboard_limit,
            answer_order=self._game_settings.answer_order,
            question_category=self._game_settings.question_category,
            question_difficulty=self._game_settings.question_difficulty
        )

    def _bounded_int(self, name: str, value: Any, minimum: int, maximum: int) -> Optional[Dict[str, Any]]:
        """Return an error result if value is not an int within bounds, else None."""
        if not isinstance(value, int) or isinstance(value, bool):
            error_msg = f"{name} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }
        if value < minimum or value > maximum:
            error_msg = f"{name} must be between {minimum} and {maximum}, got {value}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {name} must be between {minimum} and {maximum}"
            }
        return None

    def set_initial_score(self, score: int) -> Dict[str, Any]:
        """
        Set the score every new game starts from.

        Args:
            score: Starting score

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._bounded_int("Initial score", score, self.MIN_INITIAL_SCORE, self.MAX_INITIAL_SCORE)
        if error:
            return error

        self._game_settings.initial_score = score
        self.logger.info(f"Initial score set to {score}")
        return {
            'success': True,
            'message': f"Initial score set to {score}",
            'user_message': f"✅ New games start at {score} points"
        }

    def get_initial_score(self) -> int:
        return self._game_settings.initial_score

    def set_batch_size(self, size: int) -> Dict[str, Any]:
        """
        Set the number of questions fetched for each game.

        Args:
            size: Number of questions per batch

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._bounded_int("Batch size", size, self.MIN_BATCH_SIZE, self.MAX_BATCH_SIZE)
        if error:
            return error

        self._game_settings.batch_size = size
        self.logger.info(f"Batch size set to {size}")
        return {
            'success': True,
            'message': f"Batch size set to {size}",
            'user_message': f"✅ Each game will have {size} questions"
        }

    def get_batch_size(self) -> int:
        return self._game_settings.batch_size

    def set_leaderboard_limit(self, limit: int) -> Dict[str, Any]:
        """
        Set how many entries the leaderboard shows.

        Args:
            limit: Maximum number of leaderboard entries

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._bounded_int(
            "Leaderboard limit", limit, self.MIN_LEADERBOARD_LIMIT, self.MAX_LEADERBOARD_LIMIT
        )
        if error:
            return error

        self._game_settings.leaderboard_limit = limit
        self.logger.info(f"Leaderboard limit set to {limit}")
        return {
            'success': True,
            'message': f"Leaderboard limit set to {limit}",
            'user_message': f"✅ Leaderboard will show the top {limit} players"
        }

    def get_leaderboard_limit(self) -> int:
        return self._game_settings.leaderboard_limit

    def set_answer_order(self, order: str) -> Dict[str, Any]:
        """
        Set the answer ordering strategy.

        Args:
            order: "shuffle" for random order, "sort" for deterministic order

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if order not in self.ANSWER_ORDERS:
            error_msg = f"Answer order must be one of {', '.join(self.ANSWER_ORDERS)}, got {order!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown answer order: {order}"
            }

        self._game_settings.answer_order = order
        self.logger.info(f"Answer order set to {order}")
        return {
            'success': True,
            'message': f"Answer order set to {order}",
            'user_message': f"✅ Answers will be presented in {'random' if order == 'shuffle' else 'sorted'} order"
        }

    def get_answer_order(self) -> str:
        return self._game_settings.answer_order

    def set_difficulty_deltas(self, deltas: Dict[str, int]) -> Dict[str, Any]:
        """
        Set the score delta for each difficulty.

        Args:
            deltas: Mapping of difficulty name to a positive delta

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        parsed = {}
        for name, delta in deltas.items():
            try:
                difficulty = Difficulty(name)
            except ValueError:
                error_msg = f"Unknown difficulty: {name}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ Unknown difficulty: {name}"
                }
            error = self._bounded_int(f"Delta for {name}", delta, 1, self.MAX_INITIAL_SCORE)
            if error:
                return error
            parsed[difficulty] = delta

        merged = dict(DEFAULT_DIFFICULTY_DELTAS)
        merged.update(parsed)
        self._game_settings.difficulty_deltas = merged
        self.logger.info(f"Difficulty deltas set to {self._format_deltas(merged)}")
        return {
            'success': True,
            'message': f"Difficulty deltas set to {self._format_deltas(merged)}",
            'user_message': f"✅ Score deltas: {self._format_deltas(merged)}"
        }

    def set_question_filter(
        self,
        category: Optional[int] = None,
        difficulty: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Restrict fetched questions to a category and/or difficulty.

        Args:
            category: Open Trivia DB category id, or None for any
            difficulty: Difficulty name, or None for any

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if category is not None:
            error = self._bounded_int("Category", category, 1, 1000)
            if error:
                return error

        parsed_difficulty = None
        if difficulty is not None:
            try:
                parsed_difficulty = Difficulty(difficulty)
            except ValueError:
                error_msg = f"Unknown difficulty: {difficulty}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ Unknown difficulty: {difficulty}"
                }

        self._game_settings.question_category = category
        self._game_settings.question_difficulty = parsed_difficulty
        self.logger.info(f"Question filter set to category={category}, difficulty={difficulty}")
        return {
            'success': True,
            'message': f"Question filter set to category={category}, difficulty={difficulty}",
            'user_message': "✅ Question filter updated"
        }

    def set_question_source(self, url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Dict[str, Any]:
        """
        Set the question source endpoint and request timeout.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            error_msg = f"Question source URL must be an http(s) URL, got {url!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid question source URL"
            }

        if (not isinstance(timeout, (int, float)) or
                timeout < self.MIN_REQUEST_TIMEOUT or timeout > self.MAX_REQUEST_TIMEOUT):
            error_msg = (
                f"Request timeout must be between {self.MIN_REQUEST_TIMEOUT} "
                f"and {self.MAX_REQUEST_TIMEOUT} seconds"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._question_url = url
        self._request_timeout = float(timeout)
        self.logger.info(f"Question source set to {url} (timeout {timeout}s)")
        return {
            'success': True,
            'message': f"Question source set to {url}",
            'user_message': f"✅ Questions will be fetched from {url}"
        }

    def get_question_url(self) -> str:
        return self._question_url

    def get_request_timeout(self) -> float:
        return self._request_timeout

    def set_store_path(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory the score store keeps its documents in.

        Args:
            directory: Path to the score store directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Store path cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Store path cannot be empty"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid store path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {directory}"
            }

        self._store_path = normalized_path
        self.logger.info(f"Store path set to {normalized_path}")
        return {
            'success': True,
            'message': f"Store path set to {normalized_path}",
            'user_message': f"✅ Scores will be stored in {normalized_path}"
        }

    def get_store_path(self) -> str:
        return self._store_path

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the ``game``, ``leaderboard`` and ``question_source`` sections of a config file.

        Invalid values are logged and skipped so the defaults stay in effect.

        Args:
            config: Parsed config.json contents

        Returns:
            List of error messages for settings that were rejected
        """
        game_config = config.get('game', {})
        leaderboard_config = config.get('leaderboard', {})
        source_config = config.get('question_source', {})

        results = []
        if 'initial_score' in game_config:
            results.append(self.set_initial_score(game_config['initial_score']))
        if 'batch_size' in game_config:
            results.append(self.set_batch_size(game_config['batch_size']))
        if 'answer_order' in game_config:
            results.append(self.set_answer_order(game_config['answer_order']))
        if 'difficulty_deltas' in game_config:
            results.append(self.set_difficulty_deltas(game_config['difficulty_deltas']))
        if 'category' in game_config or 'difficulty' in game_config:
            results.append(self.set_question_filter(
                game_config.get('category'), game_config.get('difficulty')
            ))
        if 'limit' in leaderboard_config:
            results.append(self.set_leaderboard_limit(leaderboard_config['limit']))
        if 'store_path' in leaderboard_config:
            results.append(self.set_store_path(leaderboard_config['store_path']))
        if 'url' in source_config or 'timeout' in source_config:
            results.append(self.set_question_source(
                source_config.get('url', self._question_url),
                source_config.get('timeout', self._request_timeout)
            ))

        errors = [result['error'] for result in results if not result['success']]
        if errors:
            self.logger.warning(f"Ignored {len(errors)} invalid configuration values")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._game_settings = GameSettings(
            initial_score=self.DEFAULT_INITIAL_SCORE,
            target_score=self.DEFAULT_TARGET_SCORE,
            batch_size=self.DEFAULT_BATCH_SIZE,
            leaderboard_limit=self.DEFAULT_LEADERBOARD_LIMIT,
            answer_order=self.DEFAULT_ANSWER_ORDER
        )
        self._question_url = self.DEFAULT_QUESTION_URL
        self._request_timeout = self.DEFAULT_REQUEST_TIMEOUT
        self._store_path = self.DEFAULT_STORE_PATH
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._game_settings

        if not (self.MIN_INITIAL_SCORE <= settings.initial_score <= self.MAX_INITIAL_SCORE):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid initial score: {settings.initial_score}")

        if not (self.MIN_BATCH_SIZE <= settings.batch_size <= self.MAX_BATCH_SIZE):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid batch size: {settings.batch_size}")

        if not (self.MIN_LEADERBOARD_LIMIT <= settings.leaderboard_limit <= self.MAX_LEADERBOARD_LIMIT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid leaderboard limit: {settings.leaderboard_limit}")

        if settings.answer_order not in self.ANSWER_ORDERS:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid answer order: {settings.answer_order}")

        missing = [d.value for d in Difficulty if d not in settings.difficulty_deltas]
        if missing:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Missing difficulty deltas: {', '.join(missing)}")

        return validation_result

    @staticmethod
    def _format_deltas(deltas: Dict[Difficulty, int]) -> str:
        return ", ".join(f"{d.value}={deltas[d]}" for d in Difficulty if d in deltas)

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._game_settings
        order_str = "random" if settings.answer_order == "shuffle" else "sorted"

        return (
            f"Game Settings:\n"
            f"• Questions per game: {settings.batch_size}\n"
            f"• Starting score: {settings.initial_score} (target {settings.target_score})\n"
            f"• Score deltas: {self._format_deltas(settings.difficulty_deltas)}\n"
            f"• Answer order: {order_str}\n"
            f"• Leaderboard size: {settings.leaderboard_limit}\n"
            f"• Question source: {self._question_url}"
        )
