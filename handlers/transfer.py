import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from database.transfer import export_json, import_json
from utils.telegram_helpers import current_user, get_store, plural, safe_send_document, safe_send_text

EXPORT_FILENAME = 'recode-config.json'
# Telegram bot downloads are capped at 20 MB; anything close is not an export
IMPORT_MAX_BYTES = 5 * 1024 * 1024


async def export_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/export: send the user's decks, cards and profile as a JSON document."""
    user = current_user(update, context)
    text = export_json(get_store(context), user.id)
    if text is None:
        await safe_send_text(update.message, "Nothing to export.")
        return

    logging.info(f"Exporting data for user {user.id}")
    await safe_send_document(
        update.message,
        text.encode('utf-8'),
        EXPORT_FILENAME,
        caption="\U0001f4e6 Your decks and cards. Send this file back to restore them.",
    )


async def import_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """A .json document was sent: replace the user's data with it."""
    doc = update.message.document
    if doc.file_size and doc.file_size > IMPORT_MAX_BYTES:
        await safe_send_text(update.message, "\u26a0\ufe0f That file is too big to be an export.")
        return

    user = current_user(update, context)
    store = get_store(context)
    data = await (await doc.get_file()).download_as_bytearray()

    if not import_json(store, user.id, bytes(data)):
        await safe_send_text(
            update.message,
            "\u26a0\ufe0f Couldn't import that file. Nothing was changed.\n\n"
            "<i>It needs to be a /export file with decks, cards and user.</i>",
        )
        return

    decks = store.list_decks(user.id)
    cards = store.list_cards(user.id)
    await safe_send_text(
        update.message,
        f"\u2705 Imported {plural(len(decks), 'deck')} and {plural(len(cards), 'card')}",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks')]
        ]),
    )
