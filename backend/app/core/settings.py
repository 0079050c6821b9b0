import os


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./sql_app.db") or "sqlite:///./sql_app.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")
        self.frontend_url = _getenv("FRONTEND_URL", "http://localhost:5173") or "http://localhost:5173"
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()

        self.jwt_secret = _getenv("JWT_SECRET", "change-me-in-production-please-32b") or "change-me-in-production-please-32b"
        self.jwt_algorithm = _getenv("JWT_ALGORITHM", "HS256") or "HS256"
        self.jwt_expires_minutes = _getenv_int("JWT_EXPIRES_MINUTES", 60 * 24 * 7)

        self.paystack_secret_key = _getenv("PAYSTACK_SECRET_KEY")
        self.paystack_public_key = _getenv("PAYSTACK_PUBLIC_KEY")
        self.paystack_webhook_secret = _getenv("PAYSTACK_WEBHOOK_SECRET")
        self.paystack_base_url = _getenv("PAYSTACK_BASE_URL", "https://api.paystack.co") or "https://api.paystack.co"
        self.paystack_callback_url = _getenv("PAYSTACK_CALLBACK_URL")
        self.paystack_timeout_s = _getenv_int("PAYSTACK_TIMEOUT_S", 30)
        self.payment_currency = (_getenv("PAYMENT_CURRENCY", "NGN") or "NGN").upper()

        self.notification_max_attempts = _getenv_int("NOTIFICATION_MAX_ATTEMPTS", 5)
        self.reconcile_grace_minutes = _getenv_int("RECONCILE_GRACE_MINUTES", 15)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def payments_configured(self) -> bool:
        return bool(self.paystack_secret_key)

    def resolved_webhook_secret(self) -> str | None:
        # Paystack signs webhooks with the account secret key unless told otherwise.
        return self.paystack_webhook_secret or self.paystack_secret_key

    def resolved_callback_url(self) -> str:
        if self.paystack_callback_url:
            return self.paystack_callback_url
        return f"{self.frontend_url.rstrip('/')}/payment/callback"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()
