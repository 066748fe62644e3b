"""Global configuration for the reminder bot."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Discord
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")

# Data directory for SQLite databases
DATA_DIR = Path(os.getenv("REMINDER_BOT_DATA_DIR", "data"))

# Logging
LOG_LEVEL = os.getenv("REMINDER_BOT_LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOCALAPPDATA", ".")) / "reminder-bot" / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
