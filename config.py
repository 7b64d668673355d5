import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev_secret_change_me")
JWT_ALGO = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

REQUIRE_REGISTRATION_OTP = _flag("REQUIRE_REGISTRATION_OTP", "true")
REQUIRE_LOGIN_OTP = _flag("REQUIRE_LOGIN_OTP", "true")

MAX_LOGIN_ATTEMPTS = 5
LOGIN_LOCKOUT_MINUTES = 15

# Database
DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "lms")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Google OAuth
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_CALLBACK_URL = os.getenv("GOOGLE_CALLBACK_URL", "http://localhost:8000/api/auth/google/callback")

# Payments
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
COURSE_PRICE_CURRENCY = os.getenv("COURSE_PRICE_CURRENCY", "inr")
INR_TO_USD_RATE = float(os.getenv("INR_TO_USD_RATE", 0.012))

# Search suggestions
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:1b")
CUSTOM_LLM_URL = os.getenv("CUSTOM_LLM_URL")
LLM_MOCK_MODE = _flag("MOCK_MODE")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", 15))

# Email
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
OUTLOOK_USER = os.getenv("OUTLOOK_USER")
OUTLOOK_PASSWORD = os.getenv("OUTLOOK_PASSWORD")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_SECURE = _flag("SMTP_SECURE")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@lms.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
