import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes, ConversationHandler

from database.store import RecordStore
from utils.telegram_helpers import current_user, get_store, plural, safe_edit_text, safe_send_text


def build_main_menu(store: RecordStore, owner_id: str) -> tuple[str, InlineKeyboardMarkup]:
    """
    Returns (message_text, markup) for the main menu.
    Text includes a one-line summary when the user has cards.
    """
    total = len(store.list_cards(owner_id))
    due = len(store.get_due_cards(owner_id))

    if total == 0:
        text = "\U0001f4da <b>Recode</b>\n\n<i>No cards yet \u2014 create a deck and add your first one!</i>"
    elif due == 0:
        text = f"\u2705 <b>All caught up!</b>\n\n<i>{plural(total, 'card')} in your collection</i>"
    else:
        text = f"\U0001f9e0 <b>{plural(due, 'card')} to review</b>\n\n<i>{total} total</i>"

    review_label = f'\U0001f9e0 Review \u00b7 {due} due' if due > 0 else '\U0001f9e0 Review'
    markup = InlineKeyboardMarkup([
        [
            InlineKeyboardButton(review_label, callback_data='review'),
            InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks'),
        ],
        [
            InlineKeyboardButton('\u2795 New Deck', callback_data='new_deck'),
            InlineKeyboardButton('\U0001f4ca Stats', callback_data='stats'),
        ],
        [InlineKeyboardButton('\u2753 How it works', callback_data='help')],
    ])

    return text, markup


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logging.info("Started /start")

    user = current_user(update, context)
    text, markup = build_main_menu(get_store(context), user.id)
    await safe_send_text(
        update.message,
        f"Hey {html.escape(user.name)} \U0001f44b\n\n{text}",
        reply_markup=markup,
    )


_CONV_KEYS = (
    # card flows
    'cur_deck_id', 'editing_card_id',
    # deck flows
    'renaming_deck_id',
    # review flow
    'practice',
)


def reset_conversation(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in _CONV_KEYS:
        context.user_data.pop(key, None)


async def force_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """ConversationHandler fallback: abort the current flow and show the main menu."""
    reset_conversation(context)
    user = current_user(update, context)
    text, markup = build_main_menu(get_store(context), user.id)
    await safe_send_text(update.message, text, reply_markup=markup)
    return ConversationHandler.END


async def main_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Callback handler for the 'Menu' button (outside conversation)."""
    query = update.callback_query
    await query.answer()

    user = current_user(update, context)
    text, markup = build_main_menu(get_store(context), user.id)
    await safe_edit_text(query, text, reply_markup=markup)


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Shared /cancel and Cancel-button fallback: drop flow state, back to menu."""
    reset_conversation(context)
    user = current_user(update, context)
    text, markup = build_main_menu(get_store(context), user.id)

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END
