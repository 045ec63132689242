"""Telegram surface."""

from .bot import TelegramBot, run_bot

__all__ = ["TelegramBot", "run_bot"]
