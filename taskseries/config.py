"""Runtime configuration for the task series engine."""
import os

from dotenv import load_dotenv

# Load environment variables but prioritize local development
load_dotenv()

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Number of occurrences materialized per generation call (add, regenerate, extend, renew)
RECURRING_BATCH_SIZE = int(os.environ.get("RECURRING_BATCH_SIZE", "50"))

# Window during which a delete can be undone
UNDO_TIMEOUT_SECONDS = float(os.environ.get("UNDO_TIMEOUT_SECONDS", "3"))

# Coalesces bursts of remote change notifications into one reload
RELOAD_DEBOUNCE_SECONDS = float(os.environ.get("RELOAD_DEBOUNCE_SECONDS", "0.5"))

# How long the "series renewed" banner stays visible
RENEWAL_NOTICE_SECONDS = float(os.environ.get("RENEWAL_NOTICE_SECONDS", "5"))

# Custom recurrence multiplier bounds
MIN_RECURRENCE_MULTIPLIER = 1
MAX_RECURRENCE_MULTIPLIER = 50
