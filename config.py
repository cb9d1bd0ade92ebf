import os
from pathlib import Path
from zoneinfo import ZoneInfo
from dotenv import load_dotenv

load_dotenv()
BOT_TOKEN = os.getenv("BOT_TOKEN")
TZ = ZoneInfo(os.getenv("TZ", "Australia/Sydney"))

DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
SOLVED_MARKER_PATH = Path(os.getenv("SOLVED_MARKER_PATH", str(DATA_DIR / "solved.png")))
DB_PATH = os.getenv("DB_PATH", "puzzles.db")

# optional filters, empty means accept everything
DAILY_PUZZLES_CHAT_TITLE = os.getenv("DAILY_PUZZLES_CHAT_TITLE", "")
GAME_BOT_USERNAME = os.getenv("GAME_BOT_USERNAME", "")

MEMBER_LOOKUP_ATTEMPTS = int(os.getenv("MEMBER_LOOKUP_ATTEMPTS", "3"))
VERIFY_ATTEMPTS = int(os.getenv("VERIFY_ATTEMPTS", "5"))
