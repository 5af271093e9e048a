import os
from dotenv import load_dotenv

load_dotenv()

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 8000))

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./training.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() == "true"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Field-level filtering: what filter_allowed_fields returns when no
# permission grants any field. "deny" -> empty record, "allow" -> full record.
FIELD_FILTER_DEFAULT = os.getenv("FIELD_FILTER_DEFAULT", "deny").lower()

# Reporting windows (days)
EXPIRATION_WINDOW_DAYS = int(os.getenv("EXPIRATION_WINDOW_DAYS", 30))
RECENT_ACTIVITY_DAYS = int(os.getenv("RECENT_ACTIVITY_DAYS", 30))

# CORS origins for the admin frontend, comma separated
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:8000").split(",")
    if origin.strip()
]
