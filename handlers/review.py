import html
import logging
from collections import Counter

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    CommandHandler, CallbackQueryHandler,
)

from handlers.start import force_start
from utils.constants import ReviewState, ID_PATTERN
from utils.models import Card
from utils.practice import PracticeSession
from utils.srs import QUALITIES, QUALITY_LABELS, PASSING_QUALITY, format_interval, preview_intervals
from utils.telegram_helpers import current_user, get_store, plural, safe_edit_text, safe_send_text

_NOTHING_DUE = "\u2728 Nothing due \u00b7 you're all caught up!"
_MENU_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
])


async def review_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Entry point: user clicks 'Review'."""
    query = update.callback_query
    await query.answer()

    user = current_user(update, context)
    store = get_store(context)
    cards = store.get_due_cards(user.id)

    if not cards:
        await safe_edit_text(query, _NOTHING_DUE, reply_markup=_MENU_MARKUP)
        return ConversationHandler.END

    deck_counts = Counter(card.deck_id for card in cards)
    if len(deck_counts) == 1:
        return await _start_review(query, context, user.id)

    picker_buttons: list[list[InlineKeyboardButton]] = []
    for deck_id, count in deck_counts.items():
        deck = store.get_deck(user.id, deck_id)
        deck_name = deck.name if deck else "Deck"
        picker_buttons.append([InlineKeyboardButton(
            f"\U0001f4da {deck_name}  \u00b7  {count} due",
            callback_data=f'review_deck_{deck_id}',
        )])
    picker_buttons.append([InlineKeyboardButton(
        f"\u25b6 All decks \u00b7 {len(cards)} due",
        callback_data='review_deck_all',
    )])

    await safe_edit_text(
        query,
        f"\U0001f9e0 {plural(len(cards), 'card')} due\n\nChoose a deck:",
        reply_markup=InlineKeyboardMarkup(picker_buttons),
    )
    return ReviewState.DECK_PICKER


async def review_deck_selected(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.removeprefix('review_deck_')
    user = current_user(update, context)
    return await _start_review(query, context, user.id, None if deck_id == 'all' else deck_id)


async def review_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/review slash command: sends a message with a Review button."""
    user = current_user(update, context)
    count = len(get_store(context).get_due_cards(user.id))

    if count == 0:
        await safe_send_text(update.message, _NOTHING_DUE)
        return

    await safe_send_text(
        update.message,
        f"\U0001f9e0 {plural(count, 'card')} due",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\u25b6 Review', callback_data='review')]
        ]),
    )


async def show_answer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User taps 'Show answer': reveal the answer plus rating buttons."""
    query = update.callback_query
    await query.answer()

    session: PracticeSession | None = context.user_data.get('practice')
    if session is None or session.finished:
        return await _finish_review(query, context)

    card = session.current
    deck = session.store.get_deck(session.owner_id, card.deck_id)
    deck_name = html.escape(deck.name) if deck else "\u2014"

    text = (
        f"{html.escape(card.question)}\n\n"
        f"\U0001f4a1 {html.escape(card.answer)}\n\n"
        f"\U0001f4c1 {deck_name}  \u00b7  {_progress_label(session)}"
    )
    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup(_build_rating_buttons(card)))
    return ReviewState.RATING


async def rate_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User rates a card: schedule it, move to the next one."""
    query = update.callback_query
    await query.answer()

    session: PracticeSession | None = context.user_data.get('practice')
    if session is None or session.finished:
        return await _finish_review(query, context)

    quality = int(query.data.removeprefix('rate_'))
    card = session.current
    stats = session.answer(quality)

    if stats is None and session.current is card:
        # rejected rating, card is still current
        return ReviewState.RATING

    if stats is not None:
        logging.info(
            f"Card {card.id}: rated {quality}, next due {stats.due_date:%Y-%m-%d}, "
            f"interval={stats.interval}"
        )

    if session.finished:
        return await _finish_review(query, context)
    return await _show_front(query, session)


async def cancel_review(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User cancels mid-review. Works for both callback button and /cancel command."""
    session: PracticeSession | None = context.user_data.pop('practice', None)
    reviewed = session.reviewed if session else 0

    text = f"\u23f9 Stopped after {plural(reviewed, 'card')}"
    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=_MENU_MARKUP)
    else:
        await safe_send_text(update.message, text, reply_markup=_MENU_MARKUP)

    return ConversationHandler.END


# ── Private helpers ───────────────────────────────────────────

async def _start_review(
    query: CallbackQuery,
    context: ContextTypes.DEFAULT_TYPE,
    owner_id: str,
    deck_id: str | None = None,
) -> int:
    session = PracticeSession(get_store(context), owner_id, deck_id=deck_id)
    if session.finished:
        await safe_edit_text(query, _NOTHING_DUE, reply_markup=_MENU_MARKUP)
        return ConversationHandler.END

    context.user_data['practice'] = session
    return await _show_front(query, session)


def _progress_label(session: PracticeSession) -> str:
    return f"{session.index + 1}/{session.total}"


async def _show_front(query: CallbackQuery, session: PracticeSession) -> int:
    card = session.current
    buttons = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f440 Show answer", callback_data='show_answer')],
        [InlineKeyboardButton("\u23f9 Stop", callback_data='cancel_review')],
    ])
    await safe_edit_text(
        query,
        f"{html.escape(card.question)}\n\n{_progress_label(session)}",
        reply_markup=buttons,
    )
    return ReviewState.SHOWING_FRONT


_QUALITY_MARKS = {0: '\u26ab', 1: '\U0001f534', 2: '\U0001f7e0', 3: '\U0001f7e1', 4: '\U0001f7e2', 5: '\U0001f535'}


def _build_rating_buttons(card: Card) -> list[list[InlineKeyboardButton]]:
    """Six rating buttons, failing grades on top, each with its next interval."""
    previews = preview_intervals(card.stats)
    buttons = [
        InlineKeyboardButton(
            f"{_QUALITY_MARKS[q]} {QUALITY_LABELS[q]} {format_interval(previews[q])}",
            callback_data=f'rate_{q}',
        )
        for q in QUALITIES
    ]
    return [buttons[:PASSING_QUALITY], buttons[PASSING_QUALITY:]]


async def _finish_review(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Show review summary and end conversation."""
    session: PracticeSession | None = context.user_data.pop('practice', None)
    recalled = session.recalled if session else 0
    total = session.total if session else 0

    markup = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f4da My Decks", callback_data='my_decks'),
         InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
    ])
    await safe_edit_text(query, f"\U0001f389 Done! {recalled}/{total} recalled", reply_markup=markup)
    return ConversationHandler.END


review_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(review_entry, pattern='^review$')],
    per_message=False,
    states={
        ReviewState.DECK_PICKER: [
            CallbackQueryHandler(review_deck_selected, pattern=rf'^review_deck_{ID_PATTERN}$'),
        ],
        ReviewState.SHOWING_FRONT: [
            CallbackQueryHandler(show_answer, pattern='^show_answer$'),
            CallbackQueryHandler(cancel_review, pattern='^cancel_review$'),
        ],
        ReviewState.RATING: [
            CallbackQueryHandler(rate_card, pattern='^rate_[0-5]$'),
        ],
    },
    fallbacks=[
        CommandHandler('cancel', cancel_review),
        CommandHandler('start', force_start),
        CallbackQueryHandler(cancel_review, pattern='^cancel_review$'),
    ],
)
