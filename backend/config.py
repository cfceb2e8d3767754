# config.py
# Environment settings (.env supported)
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./calendar.db")
WEB_ORIGIN = os.getenv("WEB_ORIGIN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Display timezone. Persisted timestamps are always UTC.
CALENDAR_TZ = os.getenv("CALENDAR_TZ", "Europe/Stockholm")

# create-notification edge function
NOTIFY_URL = os.getenv("NOTIFY_URL", "")
NOTIFY_API_KEY = os.getenv("NOTIFY_API_KEY", "")
NOTIFY_TIMEOUT = float(os.getenv("NOTIFY_TIMEOUT", "10"))
