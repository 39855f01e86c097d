import discord
from discord.ext import commands
import logging
import os
from typing import Dict, Optional, Sequence

import httpx

from .config_manager import ConfigManager
from .game_controller import GameController
from .leaderboard import Leaderboard, format_leaderboard
from .models import AnswerState, GameSnapshot, GameStatus, LeaderboardEntry
from .question_source import OpenTriviaSource
from .score_store import JsonFileScoreStore

logger = logging.getLogger(__name__)

COLOR_OK = 0x00ff00
COLOR_ERROR = 0xff0000
COLOR_INFO = 0x6699ff
COLOR_WARNING = 0xffaa00


def build_question_embed(snapshot: GameSnapshot) -> discord.Embed:
    """Render the current question, its choices and the score board."""
    session = snapshot.session
    question = snapshot.question

    if question is None:
        description = "Loading questions..." if session.loading else "No game in progress. Use `/play` to start."
        embed = discord.Embed(title="🧠 Trivia", description=description, color=COLOR_INFO)
        if session.last_error:
            embed.add_field(name="⚠️ Last error", value=session.last_error, inline=False)
        return embed

    if question.answer_state is AnswerState.CORRECT:
        color = COLOR_OK
    elif question.answer_state is AnswerState.WRONG:
        color = COLOR_ERROR
    else:
        color = COLOR_INFO

    embed = discord.Embed(
        title=f"Question {session.current_index + 1}/{len(session.questions)}",
        description=f"**{question.text}**",
        color=color
    )
    embed.add_field(
        name="Details",
        value=f'Category: "{question.category}" | Difficulty: "{question.difficulty.value}"',
        inline=False
    )

    lines = []
    for position, choice in enumerate(snapshot.choices, start=1):
        marker = ""
        if question.locked:
            if choice == question.correct_answer:
                marker = " ✅"
            elif choice == question.chosen_answer:
                marker = " ❌"
        lines.append(f"`{position}.` {choice}{marker}")
    embed.add_field(
        name="Answers" if not question.locked else "Answers (locked)",
        value="\n".join(lines) or "-",
        inline=False
    )

    embed.add_field(name="Score", value=str(session.score), inline=True)
    embed.add_field(name="Answered", value=str(session.answered_count), inline=True)
    embed.add_field(name="Correct", value=str(session.correct_count), inline=True)

    navigation = []
    if snapshot.can_go_previous:
        navigation.append("/prev")
    if snapshot.can_go_next:
        navigation.append("/next")
    footer = "Answer with /answer <number>"
    if navigation:
        footer += " | Navigate with " + " ".join(navigation)
    embed.set_footer(text=footer)
    return embed


def build_leaderboard_embed(entries: Sequence[LeaderboardEntry]) -> discord.Embed:
    embed = discord.Embed(title="🏆 Leaderboard", color=COLOR_WARNING)
    lines = format_leaderboard(entries)
    embed.description = "\n".join(lines) if lines else "No scores yet. Be the first!"
    return embed


def build_game_over_embed(snapshot: GameSnapshot) -> discord.Embed:
    """Render the end-of-game screen with the leaderboard."""
    session = snapshot.session
    won = session.status is GameStatus.WON
    embed = discord.Embed(
        title="🎉 You Win!" if won else "💀 You Lose",
        description=f"You answered {session.correct_count} correctly! "
                    f"({session.answered_count} answers given)",
        color=COLOR_OK if won else COLOR_ERROR
    )
    if won and not session.submitted:
        embed.add_field(
            name="Submit Your Score",
            value="Use `/submit <username> <password>` to join the leaderboard.",
            inline=False
        )
    elif won:
        embed.add_field(name="Submit Your Score", value="✅ Successfully submitted!", inline=False)
    else:
        embed.add_field(
            name="Submit Your Score",
            value="You can only submit your score if you beat the game!",
            inline=False
        )

    lines = format_leaderboard(snapshot.leaderboard)
    embed.add_field(
        name="🏆 Leaderboard",
        value="\n".join(lines) if lines else "No scores yet.",
        inline=False
    )
    embed.set_footer(text="Use /play to play again!")
    return embed


def build_snapshot_embed(snapshot: GameSnapshot) -> discord.Embed:
    if snapshot.session.is_over:
        return build_game_over_embed(snapshot)
    return build_question_embed(snapshot)


class TriviaBot(commands.Bot):
    """Discord bot that runs one trivia game per channel"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.leaderboard: Optional[Leaderboard] = None
        self.question_source: Optional[OpenTriviaSource] = None
        self.http_client: Optional[httpx.AsyncClient] = None
        self.controllers: Dict[int, GameController] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.config_manager.apply_config(self.app_config)

            self.http_client = httpx.AsyncClient()
            self.question_source = OpenTriviaSource(
                url=self.config_manager.get_question_url(),
                timeout=self.config_manager.get_request_timeout(),
                client=self.http_client
            )
            self.leaderboard = Leaderboard(
                JsonFileScoreStore(self.config_manager.get_store_path()),
                limit=self.config_manager.get_leaderboard_limit()
            )

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def close(self):
        if self.http_client is not None:
            await self.http_client.aclose()
        await super().close()

    def get_controller(self, channel_id: int) -> GameController:
        """Get the channel's game controller, creating it on first use."""
        controller = self.controllers.get(channel_id)
        if controller is None:
            controller = GameController(self.question_source, self.leaderboard, self.config_manager)
            self.controllers[channel_id] = controller
            logger.info(f"Created game controller for channel {channel_id}")
        return controller

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and the game rules")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="play", description="Start a new trivia game")
        async def play_command(interaction: discord.Interaction):
            await self.handle_play(interaction)

        @self.tree.command(name="question", description="Show the current question")
        async def question_command(interaction: discord.Interaction):
            await self.handle_question(interaction)

        @self.tree.command(name="answer", description="Answer the current question by number")
        async def answer_command(interaction: discord.Interaction, number: int):
            await self.handle_answer(interaction, number)

        @self.tree.command(name="next", description="Go to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_next(interaction)

        @self.tree.command(name="prev", description="Go to the previous question")
        async def prev_command(interaction: discord.Interaction):
            await self.handle_prev(interaction)

        @self.tree.command(name="submit", description="Submit your score to the leaderboard")
        async def submit_command(interaction: discord.Interaction, username: str, password: str):
            await self.handle_submit(interaction, username, password)

        @self.tree.command(name="leaderboard", description="Show the top players")
        async def leaderboard_command(interaction: discord.Interaction):
            await self.handle_leaderboard(interaction)

        @self.tree.command(name="login", description="Sign in again with your username and password")
        async def login_command(interaction: discord.Interaction, username: str, password: str):
            await self.handle_login(interaction, username, password)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            settings = self.config_manager.get_game_settings()
            embed = discord.Embed(
                title="🧠 Trivia Commands",
                description=(
                    f"Start with {settings.initial_score} points and race to exactly "
                    f"{settings.target_score}. Right answers subtract points, wrong answers add them."
                ),
                color=COLOR_OK
            )
            embed.add_field(
                name="🎮 Game",
                value=(
                    "`/play` - Start a new game\n"
                    "`/question` - Show the current question\n"
                    "`/answer <number>` - Answer the current question\n"
                    "`/next` / `/prev` - Move between questions"
                ),
                inline=False
            )
            embed.add_field(
                name="🏆 Leaderboard",
                value=(
                    "`/submit <username> <password>` - Save a winning score\n"
                    "`/leaderboard` - Show the top players\n"
                    "`/login <username> <password>` - Sign in again"
                ),
                inline=False
            )
            embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information")

    async def handle_play(self, interaction: discord.Interaction):
        """Handle /play command"""
        controller = self.get_controller(interaction.channel_id)
        await interaction.response.defer()

        result = await controller.new_game()
        if result.get('stale'):
            await self.send_info_response(interaction, "A newer game was started in this channel.")
            return
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Could Not Start Game")
            return

        await interaction.followup.send(embed=build_question_embed(controller.snapshot()))

    async def handle_question(self, interaction: discord.Interaction):
        """Handle /question command"""
        controller = self.get_controller(interaction.channel_id)
        snapshot = controller.snapshot()
        if snapshot.session.is_over:
            await controller.refresh_leaderboard()
            snapshot = controller.snapshot()
        await interaction.response.send_message(embed=build_snapshot_embed(snapshot))

    async def handle_answer(self, interaction: discord.Interaction, number: int):
        """Handle /answer command"""
        controller = self.get_controller(interaction.channel_id)
        result = controller.answer_by_position(number)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Answer Not Accepted")
            return

        if result['game_over']:
            await interaction.response.defer()
            await controller.refresh_leaderboard()
            await interaction.followup.send(embed=build_game_over_embed(controller.snapshot()))
            return

        await interaction.response.send_message(embed=build_question_embed(controller.snapshot()))

    async def handle_next(self, interaction: discord.Interaction):
        """Handle /next command"""
        controller = self.get_controller(interaction.channel_id)
        if not controller.next():
            await self.send_info_response(interaction, "You are on the last question.")
            return
        await interaction.response.send_message(embed=build_question_embed(controller.snapshot()))

    async def handle_prev(self, interaction: discord.Interaction):
        """Handle /prev command"""
        controller = self.get_controller(interaction.channel_id)
        if not controller.previous():
            await self.send_info_response(interaction, "You are on the first question.")
            return
        await interaction.response.send_message(embed=build_question_embed(controller.snapshot()))

    async def handle_submit(self, interaction: discord.Interaction, username: str, password: str):
        """Handle /submit command. Responses are ephemeral since the command carries a password."""
        controller = self.get_controller(interaction.channel_id)
        await interaction.response.defer(ephemeral=True)

        result = await controller.submit_score(username, password)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Score Not Submitted")
            return

        await self.send_info_response(interaction, result.get('user_message', result['message']), "✅ Score Submitted")

    async def handle_leaderboard(self, interaction: discord.Interaction):
        """Handle /leaderboard command"""
        controller = self.get_controller(interaction.channel_id)
        entries = await controller.refresh_leaderboard()
        await interaction.response.send_message(embed=build_leaderboard_embed(entries))

    async def handle_login(self, interaction: discord.Interaction, username: str, password: str):
        """Handle /login command"""
        controller = self.get_controller(interaction.channel_id)
        await interaction.response.defer(ephemeral=True)
        result = await controller.verify_player(username, password)
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "✅ Signed In")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Sign In Failed")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_ephemeral(interaction, message, title, COLOR_ERROR)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_ephemeral(interaction, message, title, COLOR_INFO)

    async def _send_ephemeral(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {title}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = TriviaBot(config)

    try:
        logger.info("Starting Trivia Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
