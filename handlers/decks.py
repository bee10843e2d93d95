import html
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

from handlers.start import cancel, force_start
from utils.constants import DeckState, DECK_NAME_MAX, ID_PATTERN
from utils.telegram_helpers import current_user, get_store, plural, safe_edit_text, safe_send_text
from utils.utils import parse_deck_text

DECKS_PER_PAGE = 5
CARDS_PER_PAGE = 8
QUESTION_MAX = 30

_MENU_ROW = [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]


def _truncate(text: str, max_len: int) -> str:
    text = text.replace('\n', ' ')
    return text if len(text) <= max_len else text[:max_len - 1] + '\u2026'


# ── My Decks list ─────────────────────────────────────────────

def _deck_button(entry: dict[str, Any]) -> InlineKeyboardButton:
    deck = entry['deck']
    due = entry['due_count']
    due_part = f"  \u2757 {due} due" if due > 0 else ""
    label = f"\U0001f4da {deck.name} \u00b7 {plural(entry['card_count'], 'card')}{due_part}"
    return InlineKeyboardButton(label, callback_data=f"deck_open_{deck.id}")


def _build_decks_markup(decks: list[dict[str, Any]], page: int) -> tuple[str, InlineKeyboardMarkup]:
    if not decks:
        return (
            "\U0001f4da No decks yet\n\nCreate one to start adding cards.",
            InlineKeyboardMarkup([
                [InlineKeyboardButton("\u2795 New Deck", callback_data='new_deck')],
                _MENU_ROW,
            ]),
        )

    total_pages = max(1, (len(decks) + DECKS_PER_PAGE - 1) // DECKS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))
    start = page * DECKS_PER_PAGE

    header = "\U0001f4da My Decks"
    if total_pages > 1:
        header += f" ({page + 1}/{total_pages})"

    buttons = [[_deck_button(d)] for d in decks[start:start + DECKS_PER_PAGE]]

    if total_pages > 1:
        nav: list[InlineKeyboardButton] = []
        if page > 0:
            nav.append(InlineKeyboardButton("\u2190", callback_data=f'decks_page_{page - 1}'))
        if page < total_pages - 1:
            nav.append(InlineKeyboardButton("\u2192", callback_data=f'decks_page_{page + 1}'))
        buttons.append(nav)

    buttons.append([InlineKeyboardButton("\u2795 New Deck", callback_data='new_deck')])
    buttons.append(_MENU_ROW)
    return header, InlineKeyboardMarkup(buttons)


async def my_decks_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    user = current_user(update, context)
    decks = get_store(context).list_decks_with_stats(user.id)
    header, markup = _build_decks_markup(decks, 0)
    await safe_edit_text(query, header, reply_markup=markup)


async def decks_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    page = int(query.data.removeprefix('decks_page_'))
    user = current_user(update, context)
    decks = get_store(context).list_decks_with_stats(user.id)
    header, markup = _build_decks_markup(decks, page)
    await safe_edit_text(query, header, reply_markup=markup)


async def decks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/decks slash command: send a fresh My Decks list."""
    user = current_user(update, context)
    decks = get_store(context).list_decks_with_stats(user.id)
    header, markup = _build_decks_markup(decks, 0)
    await safe_send_text(update.message, header, reply_markup=markup)


# ── Deck detail ───────────────────────────────────────────────

async def show_deck_detail(
    query: CallbackQuery,
    context: ContextTypes.DEFAULT_TYPE,
    owner_id: str,
    deck_id: str,
    page: int = 0,
) -> None:
    store = get_store(context)
    deck = store.get_deck(owner_id, deck_id)
    if deck is None:
        await safe_edit_text(
            query,
            "Deck not found.",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('My Decks', callback_data='my_decks')]
            ]),
        )
        return

    cards = store.list_cards(owner_id, deck_id)
    total_pages = max(1, (len(cards) + CARDS_PER_PAGE - 1) // CARDS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))
    start = page * CARDS_PER_PAGE
    page_cards = cards[start:start + CARDS_PER_PAGE]

    header = f"<b>\U0001f4da {html.escape(deck.name)}</b> \u00b7 {plural(len(cards), 'card')}"
    if total_pages > 1:
        header += f"  ({page + 1}/{total_pages})"
    if deck.description:
        header += f"\n<i>{html.escape(deck.description)}</i>"

    buttons: list[list[InlineKeyboardButton]] = [
        [InlineKeyboardButton(
            f"{start + i}. {_truncate(card.question, QUESTION_MAX)}",
            callback_data=f'card_info_{card.id}',
        )]
        for i, card in enumerate(page_cards, start=1)
    ]

    if total_pages > 1:
        nav: list[InlineKeyboardButton] = []
        if page > 0:
            nav.append(InlineKeyboardButton('\u2190', callback_data=f'deck_page_{page - 1}_{deck_id}'))
        if page < total_pages - 1:
            nav.append(InlineKeyboardButton('\u2192', callback_data=f'deck_page_{page + 1}_{deck_id}'))
        buttons.append(nav)

    buttons.append([InlineKeyboardButton('\U0001f4dd Add card', callback_data=f'add_card_{deck_id}')])
    buttons.append([
        InlineKeyboardButton('\u270f\ufe0f Rename', callback_data=f'deck_rename_{deck_id}'),
        InlineKeyboardButton('\U0001f5d1\ufe0f Delete deck', callback_data=f'deck_delete_{deck_id}'),
    ])
    buttons.append([InlineKeyboardButton('My Decks', callback_data='my_decks')])

    text = header if cards else f"{header}\n\n<i>No cards yet</i>"
    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup(buttons))


async def deck_open(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    user = current_user(update, context)
    await show_deck_detail(query, context, user.id, query.data.removeprefix('deck_open_'))


async def deck_cards_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    page, deck_id = query.data.removeprefix('deck_page_').split('_', 1)
    user = current_user(update, context)
    await show_deck_detail(query, context, user.id, deck_id, int(page))


# ── Delete deck ───────────────────────────────────────────────

async def deck_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.removeprefix('deck_delete_')

    user = current_user(update, context)
    deck = get_store(context).get_deck(user.id, deck_id)
    if deck is None:
        await show_deck_detail(query, context, user.id, deck_id)
        return

    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete deck <b>{html.escape(deck.name)}</b> and all its cards?\n"
        f"<i>This cannot be undone.</i>",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f'deck_confirm_delete_{deck_id}'),
                InlineKeyboardButton('Cancel', callback_data=f'deck_open_{deck_id}'),
            ]
        ]),
    )


async def deck_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.removeprefix('deck_confirm_delete_')

    user = current_user(update, context)
    store = get_store(context)
    store.delete_deck(user.id, deck_id)

    header, markup = _build_decks_markup(store.list_decks_with_stats(user.id), 0)
    await safe_edit_text(query, header, reply_markup=markup)


# ── New deck conversation ─────────────────────────────────────

def _check_deck_name(name: str) -> str | None:
    """Error message for a bad deck name, None if it's fine."""
    if not name:
        return "\u26a0\ufe0f Deck name can't be empty. Try again:"
    if len(name) > DECK_NAME_MAX:
        return f"\u26a0\ufe0f Too long \u2014 {DECK_NAME_MAX} characters max. Try again:"
    return None


async def new_deck_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    await safe_edit_text(
        query,
        "\u270f\ufe0f Name for the new deck:\n\n"
        "<i>Add a description after a bar:</i> <code>Python | stdlib tricks</code>\n"
        "<i>/cancel to abort</i>",
    )
    return DeckState.AWAITING_NAME


async def new_deck_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """/newdeck [name | description]: create right away when a name is given."""
    if context.args:
        return await _create_deck(update, context, ' '.join(context.args))

    await safe_send_text(update.message, "\u270f\ufe0f Name for the new deck:\n<i>/cancel to abort</i>")
    return DeckState.AWAITING_NAME


async def receive_deck_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    return await _create_deck(update, context, update.message.text or '')


async def _create_deck(update: Update, context: ContextTypes.DEFAULT_TYPE, raw: str) -> int:
    parsed = parse_deck_text(raw)
    problem = _check_deck_name(parsed['name'])
    if problem:
        await safe_send_text(update.message, problem)
        return DeckState.AWAITING_NAME

    user = current_user(update, context)
    deck = get_store(context).create_deck(user.id, parsed['name'], parsed['description'])
    if deck is None:
        await safe_send_text(update.message, "\u26a0\ufe0f Couldn't create the deck. Try /start.")
        return ConversationHandler.END

    await safe_send_text(
        update.message,
        f"\u2705 Deck <b>{html.escape(deck.name)}</b> created!",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\U0001f4dd Add card', callback_data=f'add_card_{deck.id}')],
            [InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks')],
        ]),
    )
    return ConversationHandler.END


# ── Rename deck conversation ──────────────────────────────────

async def start_rename_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.removeprefix('deck_rename_')

    user = current_user(update, context)
    deck = get_store(context).get_deck(user.id, deck_id)
    if deck is None:
        await safe_edit_text(query, "Deck not found.")
        return ConversationHandler.END

    context.user_data['renaming_deck_id'] = deck_id
    current = f"{deck.name} | {deck.description}" if deck.description else deck.name
    await safe_edit_text(
        query,
        f"\u270f\ufe0f Rename <b>{html.escape(deck.name)}</b>\n\n"
        f"<code>{html.escape(current)}</code>\n\n"
        f"<i>Send the new name (and optional | description).\n/cancel to abort</i>",
    )
    return DeckState.RENAME_DECK


async def receive_rename(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    parsed = parse_deck_text(update.message.text or '')
    problem = _check_deck_name(parsed['name'])
    if problem:
        await safe_send_text(update.message, problem)
        return DeckState.RENAME_DECK

    user = current_user(update, context)
    deck_id = context.user_data.pop('renaming_deck_id', None)
    description = parsed['description'] if '|' in (update.message.text or '') else None
    deck = get_store(context).update_deck(user.id, deck_id, name=parsed['name'], description=description)

    text = f"\u2714\ufe0f Renamed to <b>{html.escape(deck.name)}</b>" if deck else "Deck not found."
    await safe_send_text(
        update.message,
        text,
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('My Decks', callback_data='my_decks')]
        ]),
    )
    return ConversationHandler.END


# ── ConversationHandlers ──────────────────────────────────────

new_deck_handler = ConversationHandler(
    entry_points=[
        CallbackQueryHandler(new_deck_entry, pattern='^new_deck$'),
        CommandHandler('newdeck', new_deck_command),
    ],
    per_message=False,
    states={
        DeckState.AWAITING_NAME: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_deck_name),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)

rename_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_rename_deck, pattern=rf'^deck_rename_{ID_PATTERN}$')],
    per_message=False,
    states={
        DeckState.RENAME_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_rename),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
