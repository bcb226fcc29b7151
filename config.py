import os


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "food_admin")

# Auth settings
SECRET_KEY = os.getenv("SECRET_KEY", "secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12))
ADMIN_IDENTITIES = [i.strip() for i in os.getenv("ADMIN_IDENTITIES", "admin").split(",") if i.strip()]

# Reporting switches
REPORT_CATEGORY_DELIVERED_ONLY = _flag("REPORT_CATEGORY_DELIVERED_ONLY", True)
REPORT_VALUATION_ACTIVE_ONLY = _flag("REPORT_VALUATION_ACTIVE_ONLY", False)

# Follow MongoDB change streams so the live dashboard sees the customer app's writes
WATCH_CHANGES = _flag("WATCH_CHANGES", True)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
