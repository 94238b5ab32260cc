# relohire/core/config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


class Settings:
    def __init__(self) -> None:
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            # Prod config comes from the service environment only.
            load_dotenv()

        self.API_PREFIX = os.getenv("API_PREFIX", "/api/v1").rstrip("/")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

        # ----------------------------
        # Database
        # ----------------------------
        self.DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
        self.DB_HOST = os.getenv("DB_HOST", "")
        self.DB_PORT = os.getenv("DB_PORT", "5432")
        self.DB_NAME = os.getenv("DB_NAME", "")
        self.DB_APP_USER = os.getenv("DB_APP_USER", "")
        self.DB_APP_PASSWORD = os.getenv("DB_APP_PASSWORD", "")
        self.DB_MIGRATOR_USER = os.getenv("DB_MIGRATOR_USER", "")
        self.DB_MIGRATOR_PASSWORD = os.getenv("DB_MIGRATOR_PASSWORD", "")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "require").strip().lower()

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
        ]

        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS"))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # ----------------------------
        # Auth / JWT
        # ----------------------------
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))
        self.PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))

        # ----------------------------
        # Email delivery
        # ----------------------------
        self.EMAIL_PROVIDER = os.getenv("EMAIL_PROVIDER", "resend").strip().lower()
        self.EMAIL_ENABLED = str_to_bool(os.getenv("EMAIL_ENABLED"), default=False)
        self.FROM_EMAIL = os.getenv("FROM_EMAIL", "")
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
        self.AWS_REGION = os.getenv("AWS_REGION", "")

        # SMTP (only relevant if EMAIL_PROVIDER=gmail/smtp)
        self.SMTP_HOST = os.getenv("SMTP_HOST", "")
        self.SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
        self.SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
        self.SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
        self.SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "")
        self.SMTP_USE_TLS = str_to_bool(os.getenv("SMTP_USE_TLS", "true"), default=True)
        self.SMTP_USE_SSL = str_to_bool(os.getenv("SMTP_USE_SSL", "false"), default=False)

        if self.ENV == "prod":
            self.FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "").strip().rstrip("/")
        else:
            self.FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000").strip().rstrip("/")

        # ----------------------------
        # Cache
        # ----------------------------
        self.REDIS_URL = os.getenv("REDIS_URL", "").strip()
        self.CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "2048"))
        self.CACHE_TTL_JOB_MATCHES = int(os.getenv("CACHE_TTL_JOB_MATCHES", "1800"))
        self.CACHE_TTL_USER_PROFILE = int(os.getenv("CACHE_TTL_USER_PROFILE", "3600"))
        self.CACHE_TTL_QUESTIONS = int(os.getenv("CACHE_TTL_QUESTIONS", "7200"))
        self.CACHE_TTL_JOB_STATS = int(os.getenv("CACHE_TTL_JOB_STATS", "1800"))

        # ----------------------------
        # Exam proctoring
        # ----------------------------
        self.EXAM_SESSION_TTL_SECONDS = int(os.getenv("EXAM_SESSION_TTL_SECONDS", str(4 * 60 * 60)))
        self.EXAM_MAX_VIOLATIONS_LOW = int(os.getenv("EXAM_MAX_VIOLATIONS_LOW", "10"))
        self.EXAM_MAX_VIOLATIONS_MEDIUM = int(os.getenv("EXAM_MAX_VIOLATIONS_MEDIUM", "5"))
        self.EXAM_MAX_VIOLATIONS_HIGH = int(os.getenv("EXAM_MAX_VIOLATIONS_HIGH", "3"))
        self.EXAM_MAX_VIOLATIONS_CRITICAL = int(os.getenv("EXAM_MAX_VIOLATIONS_CRITICAL", "1"))
        self.EXAM_QUESTION_COUNT = int(os.getenv("EXAM_QUESTION_COUNT", "20"))
        self.EXAM_TIME_LIMIT_MINUTES = int(os.getenv("EXAM_TIME_LIMIT_MINUTES", "60"))

        # ----------------------------
        # Payments
        # ----------------------------
        self.PAYMENT_EXPIRY_HOURS = int(os.getenv("PAYMENT_EXPIRY_HOURS", "24"))
        self.EXCHANGE_RATE_PROVIDER = os.getenv("EXCHANGE_RATE_PROVIDER", "static").strip().lower()
        self.COINGECKO_API_URL = os.getenv(
            "COINGECKO_API_URL", "https://api.coingecko.com/api/v3/simple/price"
        ).strip()
        self.EXCHANGE_RATE_TIMEOUT_SECONDS = float(os.getenv("EXCHANGE_RATE_TIMEOUT_SECONDS", "5"))
        self.TX_HASH_MIN_LENGTH = int(os.getenv("TX_HASH_MIN_LENGTH", "64"))

        # ----------------------------
        # Generated documents / background tasks
        # ----------------------------
        self.GENERATED_DOCS_DIR = os.getenv("GENERATED_DOCS_DIR", "generated_documents")
        self.CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "").strip()

        # ----------------------------
        # Rate limiting
        # ----------------------------
        self.RATE_LIMIT_ENABLED = str_to_bool(os.getenv("RATE_LIMIT_ENABLED"), default=False)
        self.RATE_LIMIT_DEFAULT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_DEFAULT_WINDOW_SECONDS", "900"))
        self.RATE_LIMIT_DEFAULT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_DEFAULT_MAX_REQUESTS", "100"))
        self.RATE_LIMIT_AUTH_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_AUTH_WINDOW_SECONDS", "900"))
        self.RATE_LIMIT_AUTH_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_AUTH_MAX_REQUESTS", "5"))

        self._validate_prod()

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.JWT_SECRET:
            missing.append("JWT_SECRET")
        if not self.DATABASE_URL:
            if not self.DB_HOST:
                missing.append("DB_HOST")
            if not self.DB_NAME:
                missing.append("DB_NAME")
            if not self.DB_APP_USER:
                missing.append("DB_APP_USER")
            if not self.DB_APP_PASSWORD:
                missing.append("DB_APP_PASSWORD")
            if self.DB_SSLMODE != "require":
                raise RuntimeError("DB_SSLMODE must be 'require' in prod")

        if not self.FRONTEND_BASE_URL:
            missing.append("FRONTEND_BASE_URL")

        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def exam_violation_thresholds(self) -> dict[str, int]:
        return {
            "low": self.EXAM_MAX_VIOLATIONS_LOW,
            "medium": self.EXAM_MAX_VIOLATIONS_MEDIUM,
            "high": self.EXAM_MAX_VIOLATIONS_HIGH,
            "critical": self.EXAM_MAX_VIOLATIONS_CRITICAL,
        }

    def _build_database_url(self, user: str, password: str) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.DB_HOST:
            # Local fallback so the app imports without a Postgres instance.
            return "sqlite+pysqlite:///./relohire.db"
        encoded_password = quote_plus(password)
        return (
            f"postgresql+psycopg2://{user}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?sslmode={self.DB_SSLMODE}"
        )

    @property
    def database_url(self) -> str:
        return self._build_database_url(self.DB_APP_USER, self.DB_APP_PASSWORD)

    @property
    def migrations_database_url(self) -> str:
        return self._build_database_url(self.DB_MIGRATOR_USER, self.DB_MIGRATOR_PASSWORD)


settings = Settings()


def require_jwt_secret() -> None:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set")
