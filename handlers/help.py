from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from utils.telegram_helpers import safe_edit_text, safe_send_text


HELP_TEXT = (
    "<b>\u2753 How it works</b>\n\n"
    "1. Create a deck, then add cards as <code>question | answer</code>\n"
    "2. Hit Review when cards are due\n"
    "3. Rate how well you remembered, from Blank (0) to Easy (5)\n\n"
    "Anything below Hard starts the card over. Good answers push it "
    "further out each time, and a card counts as mastered once it "
    "stays away for a month \U0001f9e0\n\n"
    "<b>Commands</b>\n"
    "/decks \u00b7 your decks\n"
    "/newdeck <i>name | description</i> \u00b7 new deck\n"
    "/review \u00b7 practice due cards\n"
    "/stats \u00b7 counters, streak and forecast\n"
    "/export \u00b7 download everything as JSON\n"
    "Send a <code>.json</code> export back to import it"
)

_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton("Menu", callback_data='main_menu')]
])


async def help_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, HELP_TEXT, reply_markup=_MARKUP)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(update.message, HELP_TEXT, reply_markup=_MARKUP)
