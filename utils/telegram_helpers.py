"""
Safe wrappers for Telegram API calls, plus per-update access to the store.

Handlers use these instead of raw query.edit_message_text / bot.send_message,
so a failed API call degrades to a log line instead of crashing the handler.

All text is sent with parse_mode='HTML'. Anything that came from the user
(question, answer, deck name, description, user name) must go through
html.escape() before it is put into a message.
"""

import logging
from typing import Any

from telegram import CallbackQuery, InlineKeyboardMarkup, Message, Update
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError
from telegram.ext import ContextTypes

from database.identity import IdentityProvider, UserRepository
from database.store import RecordStore
from utils.models import User

logger = logging.getLogger(__name__)


# ── store / identity ─────────────────────────────────────────

def get_store(context: ContextTypes.DEFAULT_TYPE) -> RecordStore:
    return context.bot_data['store']


def get_users(context: ContextTypes.DEFAULT_TYPE) -> UserRepository:
    return context.bot_data['users']


def current_user(update: Update, context: ContextTypes.DEFAULT_TYPE) -> User:
    """The Recode user behind this update, registered on first contact."""
    identity = IdentityProvider(get_users(context))
    tg_user = update.effective_user
    return identity.login_telegram(tg_user.id, tg_user.first_name)


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


# ── safe API calls ───────────────────────────────────────────

async def safe_edit_text(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str = 'HTML',
) -> bool:
    """Edit a callback query's message text. Falls back to reply on failure."""
    try:
        await query.edit_message_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except BadRequest as e:
        if "message is not modified" in str(e).lower():
            return True  # same content
        logger.warning(f"safe_edit_text BadRequest: {e}")
        return await _fallback_reply(query, text, reply_markup, parse_mode)
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_edit_text network error: {e}")
        return False


async def safe_send_text(
    target: Message | tuple[int, Any],
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str = 'HTML',
) -> bool:
    """Send a text message. target can be Message or (chat_id, bot) tuple."""
    try:
        if hasattr(target, 'reply_text'):
            await target.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)  # type: ignore[union-attr]
        else:
            chat_id, bot = target
            await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except Forbidden:
        logger.warning("Bot was blocked by user")
        return False
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_text network error: {e}")
        return False
    except BadRequest as e:
        logger.warning(f"safe_send_text BadRequest: {e}")
        return False


async def safe_send_document(
    message: Message,
    document: bytes,
    filename: str,
    caption: str | None = None,
) -> bool:
    """Send a file as a document reply."""
    try:
        await message.reply_document(document=document, filename=filename, caption=caption)
        return True
    except Forbidden:
        logger.warning("Bot was blocked by user")
        return False
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_document network error: {e}")
        return False
    except BadRequest as e:
        logger.warning(f"safe_send_document BadRequest: {e}")
        return False


async def _fallback_reply(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None,
    parse_mode: str = 'HTML',
) -> bool:
    """When edit fails, try sending a new message instead."""
    try:
        await query.message.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except (BadRequest, Forbidden, TimedOut, NetworkError) as e:
        logger.warning(f"_fallback_reply also failed: {e}")
        return False
