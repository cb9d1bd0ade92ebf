import logging
import time
from functools import partial
from typing import Optional

from telegram import Bot, Message, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from classes import ObservedMessage
from config import (
    BOT_TOKEN,
    DAILY_PUZZLES_CHAT_TITLE,
    GAME_BOT_USERNAME,
    SOLVED_MARKER_PATH,
)
from db import get_players, init_db, link_player
from tracker import GameStateTracker, Member
from utils import format_elapsed
from verifier import CompletionVerifier

# module logger
LOGGER = logging.getLogger(__name__)


class TelegramMessenger:
    """Sends and edits completion notifications."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, channel_id: int, text: str) -> int:
        sent = await self.bot.send_message(
            chat_id=channel_id, text=text, parse_mode=ParseMode.MARKDOWN
        )
        return sent.message_id

    async def edit(self, channel_id: int, message_id: int, text: str) -> None:
        await self.bot.edit_message_text(
            text=text,
            chat_id=channel_id,
            message_id=message_id,
            parse_mode=ParseMode.MARKDOWN,
        )


async def lookup_member(bot: Bot, chat_id: int, user_id: int) -> Member:
    """Display name and avatar URL of a chat member."""
    chat_member = await bot.get_chat_member(chat_id, user_id)
    photos = await bot.get_user_profile_photos(user_id, limit=1)

    avatar_url = None
    if photos.total_count and photos.photos:
        # smallest size is closest to how avatars are rendered in screenshots
        avatar_file = await photos.photos[0][0].get_file()
        avatar_url = avatar_file.file_path

    return Member(chat_member.user.full_name, avatar_url)


# helpers
def get_tracker(context: ContextTypes.DEFAULT_TYPE) -> GameStateTracker:
    return context.bot_data["tracker"]


def validate_message(message: Message) -> Optional[str]:
    """Return why a message should be ignored, or None if it is relevant."""
    author = message.from_user
    if GAME_BOT_USERNAME and (
        author is None or (author.username or "").lower() != GAME_BOT_USERNAME.lower()
    ):
        return "Not from the game bot"

    title = message.chat.title or ""
    if DAILY_PUZZLES_CHAT_TITLE and title.lower() != DAILY_PUZZLES_CHAT_TITLE.lower():
        return "Not in daily puzzles chat"

    return None


async def attachment_url(message: Message) -> Optional[str]:
    if message.photo:
        photo_file = await message.photo[-1].get_file()
        return photo_file.file_path
    if message.document and (message.document.mime_type or "").startswith("image/"):
        document_file = await message.document.get_file()
        return document_file.file_path
    return None


# 1. start command
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = (
        "Hi there! I time how long everyone spends on the daily puzzle.\n\n"
        "<b>Group chat usage:</b>\n"
        "1. Add me to the chat where the puzzle game posts.\n"
        "2. Everyone runs <code>/link &lt;name&gt;</code> with the name the game announces them as.\n"
        "3. When the game posts its results screenshot, I post your solving time.\n"
        "4. Run <code>/status</code> to see today's times so far.\n\n"
        "• Only time spent while the game says you are playing counts."
    )
    await update.message.reply_text(text, parse_mode=ParseMode.HTML)


# 2. link command
async def link_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id
    user_id = update.effective_user.id

    if not context.args:
        await update.message.reply_text("Usage: /link <name>")
        return

    name = " ".join(context.args).strip()
    link_player(chat_id, user_id, name)

    await update.message.reply_text(
        f"Linked @{update.effective_user.username or user_id} to {name}."
    )


# 3. today's tracked times
async def status_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id
    tracker = get_tracker(context)
    players = get_players(chat_id)

    if not players:
        await update.message.reply_text("No linked players yet. Use /link <name>.")
        return

    now = time.monotonic()
    lines = ["Today's puzzle times:\n"]
    for p in players:
        game = tracker.get(p["tele_id"])
        if game is None:
            lines.append(f"• {p['name']}: not started")
            continue
        status_icon = "✅" if game.completed else "⏳"
        lines.append(f"• {p['name']}: {status_icon} {format_elapsed(game.elapsed(now))}")

    await update.message.reply_text("\n".join(lines))


# 4. game announcements and screenshots
async def message_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    message = update.message
    why = validate_message(message)
    if why:
        LOGGER.debug("Message validation failed: %s", why)
        return

    observed = ObservedMessage(
        channel_id=message.chat_id,
        message_id=message.message_id,
        text=message.text or message.caption or "",
        attachment_url=await attachment_url(message),
    )
    await get_tracker(context).message_observed(observed)


async def edited_message_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    message = update.edited_message
    why = validate_message(message)
    if why:
        LOGGER.debug("Edited message validation failed: %s", why)
        return

    observed = ObservedMessage(
        channel_id=message.chat_id,
        message_id=message.message_id,
        text=message.text or message.caption or "",
    )
    await get_tracker(context).message_edited(observed)


def main():
    # Configure basic logging once at startup
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if not BOT_TOKEN:
        raise SystemExit("Expected a BOT_TOKEN in the environment")

    init_db()
    verifier = CompletionVerifier.from_file(SOLVED_MARKER_PATH)

    app = Application.builder().token(BOT_TOKEN).concurrent_updates(True).build()
    app.bot_data["tracker"] = GameStateTracker(
        verifier=verifier,
        messenger=TelegramMessenger(app.bot),
        lookup_member=partial(lookup_member, app.bot),
    )

    app.add_handler(CommandHandler("start", start))
    app.add_handler(CommandHandler("link", link_cmd))
    app.add_handler(CommandHandler("status", status_cmd))
    app.add_handler(
        MessageHandler(
            filters.UpdateType.MESSAGE
            & (filters.TEXT | filters.PHOTO | filters.Document.IMAGE)
            & ~filters.COMMAND,
            message_cmd,
        )
    )
    app.add_handler(
        MessageHandler(
            filters.UpdateType.EDITED_MESSAGE & (filters.TEXT | filters.CAPTION),
            edited_message_cmd,
        )
    )

    LOGGER.info("Polling...")
    app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
