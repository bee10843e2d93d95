import logging

from telegram import Update
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    MessageHandler,
    CallbackQueryHandler,
    ContextTypes,
    filters,
)

from config import TG_BOT_TOKEN, PROXY_URL, DB_PATH
from database.database import init_db
from database.identity import UserRepository
from database.store import RecordStore
import handlers.cards as hand_card
import handlers.start as hand_start
import handlers.decks as hand_deck
import handlers.review as hand_review
import handlers.stats as hand_stats
import handlers.help as hand_help
import handlers.transfer as hand_transfer
from utils.constants import ID_PATTERN


def register_handlers(application: Application) -> None:
    # Conversations first, so their states win over the standalone callbacks
    application.add_handler(CommandHandler('start', hand_start.start))
    application.add_handler(hand_card.add_card_handler)
    application.add_handler(hand_card.edit_card_handler)
    application.add_handler(hand_deck.new_deck_handler)
    application.add_handler(hand_deck.rename_deck_handler)
    application.add_handler(hand_review.review_handler)

    # Slash commands
    application.add_handler(CommandHandler('review', hand_review.review_command))
    application.add_handler(CommandHandler('stats', hand_stats.stats_command))
    application.add_handler(CommandHandler('decks', hand_deck.decks_command))
    application.add_handler(CommandHandler('help', hand_help.help_command))
    application.add_handler(CommandHandler('export', hand_transfer.export_command))

    # Import: a .json document sent outside any flow
    application.add_handler(MessageHandler(
        filters.Document.FileExtension('json'), hand_transfer.import_document
    ))

    # Standalone callback handlers
    application.add_handler(CallbackQueryHandler(hand_start.main_menu, pattern='^main_menu$'))
    application.add_handler(CallbackQueryHandler(hand_stats.stats_entry, pattern='^stats$'))
    application.add_handler(CallbackQueryHandler(hand_stats.stats_reconcile, pattern='^stats_reconcile$'))
    application.add_handler(CallbackQueryHandler(hand_help.help_entry, pattern='^help$'))

    # My Decks
    application.add_handler(CallbackQueryHandler(hand_deck.my_decks_entry, pattern='^my_decks$'))
    application.add_handler(CallbackQueryHandler(hand_deck.decks_page, pattern=r'^decks_page_\d+$'))

    # Deck detail & card actions
    application.add_handler(CallbackQueryHandler(hand_deck.deck_open, pattern=rf'^deck_open_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_cards_page, pattern=rf'^deck_page_\d+_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_delete_confirm, pattern=rf'^deck_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_delete_yes, pattern=rf'^deck_confirm_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_card.card_info, pattern=rf'^card_info_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_card.card_delete_confirm, pattern=rf'^card_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_card.card_delete_yes, pattern=rf'^card_confirm_delete_{ID_PATTERN}$'))

    application.add_error_handler(error_handler)


def main() -> None:
    logging.info("Running main")

    builder = ApplicationBuilder().token(TG_BOT_TOKEN)
    if PROXY_URL:
        builder = builder.proxy(PROXY_URL).get_updates_proxy(PROXY_URL)
    application = builder.build()

    application.bot_data['store'] = RecordStore(DB_PATH)
    application.bot_data['users'] = UserRepository(DB_PATH)

    register_handlers(application)
    application.run_polling()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Global error handler: logs the error and tries to notify the user."""
    error = context.error
    logging.error(f"Update {update} caused error: {error}", exc_info=error)

    if isinstance(error, Forbidden):
        # User blocked the bot
        logging.warning(f"Bot was blocked by user: {error}")
        return

    if isinstance(error, (TimedOut, NetworkError)):
        logging.warning(f"Network issue: {error}")
        return

    if isinstance(error, BadRequest):
        msg = str(error).lower()
        if "message is not modified" in msg:
            # same button tapped twice
            return
        if "message to edit not found" in msg or "message to delete not found" in msg:
            return
        logging.warning(f"Bad request: {error}")

    if isinstance(update, Update) and update.effective_chat:
        try:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="\u26a0\ufe0f Something went wrong. Try /start to reset."
            )
        except (BadRequest, Forbidden, TimedOut, NetworkError) as e:
            logging.warning(f"Couldn't report the error to the user: {e}")


if __name__ == '__main__':
    logging.info(f"Init db at {DB_PATH}...")
    init_db(DB_PATH)

    logging.info("Starting app")
    main()
