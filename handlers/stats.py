import logging
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from database.store import RecordStore
from utils.streak import contribution_level
from utils.telegram_helpers import current_user, get_store, plural, safe_edit_text, safe_send_text

# activity level 0-4, lightest to darkest
_LEVEL_BLOCKS = ('\u2b1c', '\U0001f7e9', '\U0001f7e9', '\U0001f7e2', '\U0001f7e2')


def _forecast_lines(forecast: list[dict[str, Any]]) -> str:
    busy = [entry for entry in forecast if entry['count']]
    if not busy:
        return "No cards due in the next 7 days"

    lines = []
    for entry in busy:
        day_label = entry['day'].strftime('%b %d')  # "Feb 18"
        lines.append(f"  {day_label}  \u00b7  {plural(entry['count'], 'card')}")
    return '\n'.join(lines)


def _activity_line(store: RecordStore, owner_id: str) -> str:
    activity = store.get_review_activity(owner_id, days=7)
    return ''.join(_LEVEL_BLOCKS[contribution_level(count)] for count in activity.values())


def _build_stats(store: RecordStore, owner_id: str) -> tuple[str, InlineKeyboardMarkup]:
    drift = store.check_stats_drift(owner_id)
    stats = drift.stored
    due_today = len(store.get_due_cards(owner_id))
    last = stats.last_practice.strftime('%b %d, %Y') if stats.last_practice else 'never'

    text = (
        f"\U0001f4ca Stats\n\n"
        f"\U0001f4da Total: {stats.total_cards}\n"
        f"\U0001f4d6 Learning: {stats.learning}\n"
        f"\U0001f3c6 Mastered: {stats.mastered}\n\n"
        f"\U0001f525 Streak: {plural(stats.streak, 'day')}\n"
        f"\U0001f5d3 Last practice: {last}\n"
        f"\U0001f514 Due today: {due_today}\n\n"
        f"\U0001f4c5 Next 7 days\n"
        f"{_forecast_lines(store.get_forecast(owner_id, days=7))}\n\n"
        f"Last 7 days  {_activity_line(store, owner_id)}"
    )

    buttons = []
    if drift.drifted:
        derived = drift.derived
        text += (
            f"\n\n\u26a0\ufe0f <i>Counters look off. From your cards: "
            f"{derived.total_cards} total, {derived.learning} learning, "
            f"{derived.mastered} mastered.</i>"
        )
        buttons.append([InlineKeyboardButton('\U0001f527 Fix counters', callback_data='stats_reconcile')])
    buttons.append([InlineKeyboardButton('\U0001f3e0 Menu', callback_data='main_menu')])

    return text, InlineKeyboardMarkup(buttons)


async def stats_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    user = current_user(update, context)
    text, markup = _build_stats(get_store(context), user.id)
    await safe_edit_text(query, text, reply_markup=markup)


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/stats slash command: send a fresh stats message."""
    user = current_user(update, context)
    text, markup = _build_stats(get_store(context), user.id)
    await safe_send_text(update.message, text, reply_markup=markup)


async def stats_reconcile(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    user = current_user(update, context)
    store = get_store(context)
    store.reconcile_stats(user.id)
    logging.info(f"User {user.id} reconciled their counters")

    text, markup = _build_stats(store, user.id)
    await safe_edit_text(query, text, reply_markup=markup)
