import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./byte2bite.db")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRES_MINUTES = _get_int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES"), 15)
REFRESH_TOKEN_EXPIRES_DAYS = _get_int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS"), 7)

OTP_LENGTH = _get_int(os.getenv("OTP_LENGTH"), 6)
OTP_EXPIRES_MINUTES = _get_int(os.getenv("OTP_EXPIRES_MINUTES"), 5)
OTP_MAX_ATTEMPTS = _get_int(os.getenv("OTP_MAX_ATTEMPTS"), 5)
OTP_RATE_LIMIT = _get_int(os.getenv("OTP_RATE_LIMIT"), 3)
OTP_RATE_WINDOW_SECONDS = _get_int(os.getenv("OTP_RATE_WINDOW_SECONDS"), 60)

AUTH_RATE_LIMIT = _get_int(os.getenv("AUTH_RATE_LIMIT"), 10)
AUTH_RATE_WINDOW_SECONDS = _get_int(os.getenv("AUTH_RATE_WINDOW_SECONDS"), 900)
RESET_RATE_LIMIT = _get_int(os.getenv("RESET_RATE_LIMIT"), 3)
RESET_RATE_WINDOW_SECONDS = _get_int(os.getenv("RESET_RATE_WINDOW_SECONDS"), 3600)

PASSWORD_RESET_EXPIRES_MINUTES = _get_int(os.getenv("PASSWORD_RESET_EXPIRES_MINUTES"), 15)
MIN_PASSWORD_LENGTH = 8

MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
MAIL_FROM = os.getenv("MAIL_FROM", "noreply@byte2bite.org")
MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "Byte2Bite")
MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
MAIL_PORT = _get_int(os.getenv("MAIL_PORT"), 587)
MAIL_STARTTLS = _get_bool(os.getenv("MAIL_STARTTLS"), default=True)
MAIL_SSL_TLS = _get_bool(os.getenv("MAIL_SSL_TLS"), default=False)
MAIL_SUPPRESS_SEND = _get_bool(os.getenv("MAIL_SUPPRESS_SEND"), default=False)
MAIL_SEND_RETRIES = _get_int(os.getenv("MAIL_SEND_RETRIES"), 2)
MAIL_RETRY_DELAY_SECONDS = _get_int(os.getenv("MAIL_RETRY_DELAY_SECONDS"), 3)

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), [FRONTEND_URL])
# Peers allowed to report the client address through X-Forwarded-For.
TRUSTED_PROXIES = _get_list(os.getenv("TRUSTED_PROXIES"), [])

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
MAX_UPLOAD_BYTES = _get_int(os.getenv("MAX_UPLOAD_BYTES"), 5 * 1024 * 1024)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
