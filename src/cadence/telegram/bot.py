"""Telegram bot integration for Cadence."""

import logging
import os

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..checker import CheckReport, DailyCheck, TicketCheck
from ..config import CadenceConfig, load_config
from ..logging import configure_logger, get_logger
from ..scheduling import ScheduleSuggestion
from ..service import SchedulerContext, SchedulerService, format_suggestion
from ..tickets import Overlay

logger = logging.getLogger(__name__)

# Chat that receives the daily check's suggestions
NOTIFY_CHAT_KEY = "telegram_chat_id"

WELCOME_MESSAGE = """
🗓 *Cadence*

Tell me a goal and I'll find time for it in your calendar.

*Commands:*
/start - Show this message
/goal <text> - Add a goal
/goals - List active goals
/suggest - Suggest time slots for your goals
/pending - Show suggestions waiting for an answer

Any other message is read as a new goal.
"""

MAX_MESSAGE_LENGTH = 4096


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n... [truncated]"


def suggestion_keyboard(suggestion_id: str) -> InlineKeyboardMarkup:
    """Accept/Reject buttons for a suggestion card."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("✅ Accept", callback_data=f"accept:{suggestion_id}"),
                InlineKeyboardButton("❌ Reject", callback_data=f"reject:{suggestion_id}"),
            ]
        ]
    )


def parse_callback_data(data: str | None) -> tuple[str, str] | None:
    """Split ``action:suggestion_id`` callback data.

    Returns:
        (action, suggestion_id), or None if the data is not a known action.
    """
    if not data or ":" not in data:
        return None
    action, suggestion_id = data.split(":", 1)
    if action not in ("accept", "reject") or not suggestion_id:
        return None
    return action, suggestion_id


class TelegramBot:
    """Telegram bot for Cadence.

    The bot serves a single owner: goals are stored under the configured
    ``user_id`` and the last chat that talked to the bot receives the
    daily check's suggestions.
    """

    def __init__(
        self,
        token: str | None = None,
        service: SchedulerService | None = None,
        config: CadenceConfig | None = None,
    ) -> None:
        self.config = config or load_config()
        self.token = token or self.config.telegram_token or os.getenv("TELEGRAM_TOKEN")
        if not self.token:
            raise ValueError("TELEGRAM_TOKEN not set")

        if service is None:
            context = SchedulerContext.from_config(self.config, os.getenv("GROQ_API_KEY"))
            service = SchedulerService(context)
        self.service = service
        self.user_id = self.config.user_id

        self.daily_check = DailyCheck(
            self.service,
            self.user_id,
            interval_seconds=self.config.check_interval_seconds,
            on_report=self._notify_report,
        )
        self.ticket_check = TicketCheck(
            self.service,
            interval_seconds=self.config.ticket_check_interval_seconds,
            on_overlays=self._notify_overlays,
        )
        self.json_logger = get_logger()
        self.json_logger.set_user_id(self.user_id)
        self._app: Application | None = None

    def _get_chat_id(self, update: Update) -> str:
        """Get chat_id as string from update."""
        assert update.effective_chat is not None
        return str(update.effective_chat.id)

    def _remember_chat(self, update: Update) -> str:
        chat_id = self._get_chat_id(update)
        self.service.store.set_setting(NOTIFY_CHAT_KEY, chat_id)
        return chat_id

    async def _send_suggestions(
        self, bot: Bot, chat_id: str, suggestions: list[ScheduleSuggestion]
    ) -> None:
        for suggestion in suggestions:
            await bot.send_message(
                chat_id=chat_id,
                text=truncate_message(format_suggestion(suggestion)),
                reply_markup=suggestion_keyboard(suggestion.id),
            )

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start command."""
        assert update.message is not None
        chat_id = self._remember_chat(update)

        self.json_logger.log("telegram_start", chat_id=chat_id)

        await update.message.reply_text(
            WELCOME_MESSAGE,
            parse_mode=ParseMode.MARKDOWN,
        )

    async def _create_goal(self, update: Update, text: str) -> None:
        assert update.message is not None
        chat_id = self._remember_chat(update)

        if not text.strip():
            await update.message.reply_text("Usage: /goal <what you want to make time for>")
            return

        await update.message.chat.send_action("typing")
        result = await self.service.create_goal_from_text(text, self.user_id)
        self.json_logger.log("telegram_goal", chat_id=chat_id, success=result.success)
        if result.success:
            await update.message.reply_text(f"🎯 {result.output}")
        else:
            await update.message.reply_text(f"❌ {result.error}")

    async def _handle_goal(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /goal <text>."""
        await self._create_goal(update, " ".join(context.args or []))

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Plain text is read as a new goal."""
        assert update.message is not None
        assert update.message.text is not None
        await self._create_goal(update, update.message.text)

    async def _handle_goals(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /goals command."""
        assert update.message is not None
        result = await self.service.list_goals(self.user_id)
        text = result.output if result.success else f"❌ {result.error}"
        await update.message.reply_text(truncate_message(text))

    async def _handle_suggest(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /suggest command."""
        assert update.message is not None
        chat_id = self._remember_chat(update)

        await update.message.chat.send_action("typing")
        result = await self.service.generate_suggestions_for_user(self.user_id)
        if not result.success:
            await update.message.reply_text(f"❌ {result.error}")
            return

        await update.message.reply_text(result.output)
        suggestions = result.data["suggestions"] if result.data else []
        await self._send_suggestions(context.bot, chat_id, suggestions)

    async def _handle_pending(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /pending command."""
        assert update.message is not None
        chat_id = self._remember_chat(update)

        result = await self.service.list_pending(self.user_id)
        if not result.success:
            await update.message.reply_text(f"❌ {result.error}")
            return

        suggestions = result.data["suggestions"] if result.data else []
        if not suggestions:
            await update.message.reply_text(result.output)
            return
        await self._send_suggestions(context.bot, chat_id, suggestions)

    async def _handle_callback(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle Accept/Reject buttons."""
        query = update.callback_query
        assert query is not None
        await query.answer()

        parsed = parse_callback_data(query.data)
        if parsed is None:
            logger.warning(f"Unknown callback data: {query.data}")
            return

        action, suggestion_id = parsed
        if action == "accept":
            result = await self.service.accept_suggestion(suggestion_id)
            prefix = "✅"
        else:
            result = await self.service.reject_suggestion(suggestion_id)
            prefix = "🗑"

        self.json_logger.log(
            "telegram_callback",
            suggestion_id=suggestion_id,
            action=action,
            success=result.success,
        )
        if result.success:
            await query.edit_message_text(f"{prefix} {result.output}")
        else:
            await query.edit_message_text(f"❌ {result.error}")

    async def _notify_report(self, report: CheckReport) -> None:
        """Send the daily check's new suggestions to the owner's chat."""
        chat_id = self.service.store.get_setting(NOTIFY_CHAT_KEY)
        if not chat_id or self._app is None:
            return
        if report.suggestions:
            await self._app.bot.send_message(
                chat_id=chat_id,
                text=f"☀️ {report.generated} new suggestion(s) for today",
            )
            await self._send_suggestions(self._app.bot, chat_id, report.suggestions)
        for error in report.errors:
            logger.warning(f"Daily check: {error}")

    async def _notify_overlays(self, overlays: list[Overlay]) -> None:
        """Send tickets for events about to start to the owner's chat."""
        chat_id = self.service.store.get_setting(NOTIFY_CHAT_KEY)
        if not chat_id or self._app is None:
            return
        for overlay in overlays:
            await self._app.bot.send_message(
                chat_id=chat_id, text=truncate_message(overlay.text)
            )

    async def _post_init(self, application: Application) -> None:
        """Called after Application.initialize()."""
        self.daily_check.start()
        self.ticket_check.start()

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        self.daily_check.stop()
        self.ticket_check.stop()
        self.service.context.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.token)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        self._app.add_handler(CommandHandler("start", self._handle_start))
        self._app.add_handler(CommandHandler("goal", self._handle_goal))
        self._app.add_handler(CommandHandler("goals", self._handle_goals))
        self._app.add_handler(CommandHandler("suggest", self._handle_suggest))
        self._app.add_handler(CommandHandler("pending", self._handle_pending))
        self._app.add_handler(CallbackQueryHandler(self._handle_callback))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        app.run_polling()


def run_bot() -> int:
    """Run the Telegram bot; returns an exit code."""
    try:
        config = load_config()
    except ValueError as e:
        print(f"❌ Error: invalid config: {e}")
        return 1

    configure_logger(config.log_dir)
    try:
        bot = TelegramBot(config=config)
    except ValueError as e:
        print(f"❌ Error: {e}")
        return 1

    bot.run()
    return 0
