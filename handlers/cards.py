import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

from handlers.decks import show_deck_detail
from handlers.start import cancel, force_start
from utils.constants import AddCardState, ManageState, CARD_SIDE_MAX, ID_PATTERN
from utils.srs import format_interval
from utils.telegram_helpers import current_user, get_store, safe_edit_text, safe_send_text
from utils.utils import parse_text


def _check_sides(parsed: dict[str, str]) -> str | None:
    """Error message for unusable card text, None if it's fine."""
    if not parsed['question']:
        return "\u26a0\ufe0f Card can't be empty. Send some text:"

    if len(parsed['question']) > CARD_SIDE_MAX or len(parsed['answer']) > CARD_SIDE_MAX:
        return f"\u26a0\ufe0f Too long, each side can be up to {CARD_SIDE_MAX} characters. Try again:"

    if not parsed['answer']:
        hint = html.escape(parsed['question'][:20])
        return (
            f"\u26a0\ufe0f Cards need a question and an answer.\n\n"
            f"Use <code>|</code> to separate them:\n"
            f"<code>{hint} | answer here</code>\n\n"
            f"Or send two lines:\n"
            f"<code>{hint}\nanswer here</code>"
        )
    return None


# ── Add card conversation ─────────────────────────────────────

async def add_card_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.removeprefix('add_card_')
    user = current_user(update, context)
    deck = get_store(context).get_deck(user.id, deck_id)
    if deck is None:
        await safe_edit_text(query, "Deck not found.")
        return ConversationHandler.END

    context.user_data['cur_deck_id'] = deck_id
    await safe_edit_text(
        query,
        f"\U0001f4dd New card in <b>{html.escape(deck.name)}</b>\n\n"
        f"<code>question | answer</code>\n\n"
        f"<i>Code blocks work too. /cancel to stop</i>",
    )
    return AddCardState.AWAITING_CONTENT


async def receive_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    logging.info("Got card content")

    parsed = parse_text(update.message.text or '')
    problem = _check_sides(parsed)
    if problem:
        await safe_send_text(update.message, problem)
        return AddCardState.AWAITING_CONTENT

    user = current_user(update, context)
    deck_id = context.user_data.get('cur_deck_id')
    card = get_store(context).create_card(user.id, deck_id, parsed['question'], parsed['answer'])
    if card is None:
        context.user_data.pop('cur_deck_id', None)
        await safe_send_text(update.message, "\u26a0\ufe0f That deck is gone. Try /decks.")
        return ConversationHandler.END

    # stay in the conversation so several cards can be added in a row
    await safe_send_text(
        update.message,
        "\u2705 Saved. Send the next one, or:",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('\u2714 Done', callback_data=f'deck_open_{deck_id}'),
        ]]),
    )
    return AddCardState.AWAITING_CONTENT


async def finish_adding(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    deck_id = context.user_data.pop('cur_deck_id', None) or query.data.removeprefix('deck_open_')
    user = current_user(update, context)
    await show_deck_detail(query, context, user.id, deck_id)
    return ConversationHandler.END


# ── Card detail / delete ──────────────────────────────────────

async def card_info(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card_id = query.data.removeprefix('card_info_')
    user = current_user(update, context)
    card = get_store(context).get_card(user.id, card_id)
    if card is None:
        await safe_edit_text(query, "Card not found.")
        return

    stats = card.stats
    last = stats.last_review.strftime('%b %d, %Y') if stats.last_review else 'Never'
    text = (
        f"<b>Q:</b> {html.escape(card.question)}\n\n"
        f"<b>A:</b> {html.escape(card.answer)}\n\n"
        f"<i>Last review: {last} \u00b7 Due: {stats.due_date.strftime('%b %d, %Y')}\n"
        f"Interval {format_interval(stats.interval)} \u00b7 ease {stats.ease_factor:.2f} "
        f"\u00b7 streak {stats.repetitions}</i>"
    )
    await safe_edit_text(
        query,
        text,
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('\u270f\ufe0f Edit', callback_data=f'card_edit_{card.id}'),
                InlineKeyboardButton('\U0001f5d1\ufe0f Delete', callback_data=f'card_delete_{card.id}'),
            ],
            [InlineKeyboardButton('\u2190 Deck', callback_data=f'deck_open_{card.deck_id}')],
        ]),
    )


async def card_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card_id = query.data.removeprefix('card_delete_')
    user = current_user(update, context)
    card = get_store(context).get_card(user.id, card_id)
    if card is None:
        await safe_edit_text(query, "Card not found.")
        return

    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete <b>{html.escape(card.question[:40])}</b>? This cannot be undone.",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f'card_confirm_delete_{card.id}'),
                InlineKeyboardButton('Cancel', callback_data=f'card_info_{card.id}'),
            ]
        ]),
    )


async def card_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card_id = query.data.removeprefix('card_confirm_delete_')
    user = current_user(update, context)
    store = get_store(context)

    card = store.get_card(user.id, card_id)
    if card is None or not store.delete_card(user.id, card_id):
        await safe_edit_text(query, "Card not found.")
        return
    await show_deck_detail(query, context, user.id, card.deck_id)


# ── Edit card conversation ────────────────────────────────────

async def start_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    card_id = query.data.removeprefix('card_edit_')
    user = current_user(update, context)
    card = get_store(context).get_card(user.id, card_id)
    if card is None:
        await safe_edit_text(query, "Card not found.")
        return ConversationHandler.END

    context.user_data['editing_card_id'] = card_id
    copyable = f"{card.question} | {card.answer}"
    await safe_edit_text(
        query,
        f"\u270f\ufe0f <b>Edit card</b>\n\n"
        f"<code>{html.escape(copyable)}</code>\n\n"
        f"<i>Tap the text above to copy, edit and send.\n/cancel to abort</i>",
    )
    return ManageState.EDIT_CARD_CONTENT


async def receive_edit_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    parsed = parse_text(update.message.text or '')
    problem = _check_sides(parsed)
    if problem:
        await safe_send_text(update.message, problem)
        return ManageState.EDIT_CARD_CONTENT

    user = current_user(update, context)
    card_id = context.user_data.pop('editing_card_id', None)
    card = get_store(context).update_card(user.id, card_id, parsed['question'], parsed['answer'])

    if card is None:
        await safe_send_text(update.message, "Card not found.")
    else:
        await safe_send_text(
            update.message,
            "\u2714\ufe0f Card updated",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('\u2190 Deck', callback_data=f'deck_open_{card.deck_id}')]
            ]),
        )
    return ConversationHandler.END


# ── ConversationHandlers ──────────────────────────────────────

add_card_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(add_card_entry, pattern=rf'^add_card_{ID_PATTERN}$')],
    per_message=False,
    states={
        AddCardState.AWAITING_CONTENT: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_card),
            CallbackQueryHandler(finish_adding, pattern=rf'^deck_open_{ID_PATTERN}$'),
        ],
    },
    fallbacks=[
        CommandHandler('cancel', cancel),
        CommandHandler('start', force_start),
        CallbackQueryHandler(cancel, pattern='^main_menu$'),
    ],
)

edit_card_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_edit_card, pattern=rf'^card_edit_{ID_PATTERN}$')],
    per_message=False,
    states={
        ManageState.EDIT_CARD_CONTENT: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_edit_content),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
