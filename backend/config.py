"""Centralized configuration: all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
BASE_URL = os.getenv("BASE_URL", "")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- Host capability ---
ADMIN_KEY = os.getenv("ADMIN_KEY", "change-me")

# --- Client embed ids served by /config ---
LIFF_ID_PLAYER = os.getenv("LIFF_ID_PLAYER", "")
LIFF_ID_HOST = os.getenv("LIFF_ID_HOST", "")

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 64 * 1024  # bytes, question sets travel over the socket

# --- Rooms ---
ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I, O, 0, 1

# --- Question timing (milliseconds) ---
DEFAULT_QUESTION_DURATION_MS = 15000
MIN_QUESTION_DURATION_MS = 5000
MAX_QUESTION_DURATION_MS = 60000
REVEAL_GRACE_MS = 200

# --- Questions ---
CHOICES_PER_QUESTION = 4
MAX_QUESTION_TEXT_LENGTH = 120
MAX_CHOICE_LENGTH = 40

# --- Players ---
MAX_NAME_LENGTH = 20
DEFAULT_PLAYER_NAME = "Guest"
# Empty pattern disables the name policy.
PLAYER_NAME_PATTERN = os.getenv("PLAYER_NAME_PATTERN", r"\d{4,10}")
PLAYER_NAME_RULE = os.getenv("PLAYER_NAME_RULE", "Name must be 4-10 digits")

# --- Scoring ---
MAX_POINTS = 1000
MIN_POINTS = 200

# --- Leaderboard / export ---
LEADERBOARD_TOP_N = 10
EXPORT_DEFAULT_MIN_SCORE = 2000

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
