# settings.py
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3978").rstrip("/")
PORT = int(os.getenv("PORT", "3978"))

LOCAL_TZ = os.getenv("TIME_ZONE", "UTC")

# Data dirs
DATA_DIR = Path(os.getenv("DATA_DIR", "data"))
GROUP_STORE = os.getenv("GROUP_STORE", str(DATA_DIR / "groups.json"))
TOKEN_STORE = os.getenv("TOKEN_STORE", str(DATA_DIR / "token_store.json"))

# working day used by the free-slot finder ("HH:MM", local time)
WORK_DAY_START = os.getenv("WORK_DAY_START", "09:00")
WORK_DAY_END = os.getenv("WORK_DAY_END", "17:00")

MAX_SUGGESTIONS = int(os.getenv("MAX_SUGGESTIONS", "3"))
DEFAULT_MEETING_TITLE = os.getenv("DEFAULT_MEETING_TITLE", "Group Meeting")

# model-based constraint extraction ("groq", "cohere", "gemini" or empty for all)
AI_PARSER_PROVIDER = os.getenv("AI_PARSER_PROVIDER", "").lower()
AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "15"))
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
COHERE_API_KEY = os.getenv("COHERE_API_KEY", "")
COHERE_MODEL = os.getenv("COHERE_MODEL", "command-r-plus")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_GENAI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash-latest")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
