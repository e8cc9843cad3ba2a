import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Supabase (identity provider, user metadata storage)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    # Paystack (payment gateway)
    PAYSTACK_SECRET_KEY: Optional[str] = None
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CURRENCY: str = "NGN"

    # Stream (video call provider)
    STREAM_API_KEY: Optional[str] = None
    STREAM_SECRET_KEY: Optional[str] = None
    STREAM_BASE_URL: str = "https://video.stream-io-api.com"

    # Pricing (USD list prices, converted to NGN at checkout)
    PRO_PRICE_USD: float = 15.0
    BUSINESS_PRICE_USD: float = 35.0
    USD_TO_NGN_RATE: float = 1500.0

    # App URLs
    BASE_URL: Optional[str] = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Admin access
    ADMIN_KEY: Optional[str] = None  # Legacy key, disabled in production
    ADMIN_AUTH_MODE: str = "hybrid"  # "jwt" | "legacy" | "hybrid"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("confera")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_JWT_SECRET",
        "PAYSTACK_SECRET_KEY",
        "STREAM_API_KEY",
        "STREAM_SECRET_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True


def require_setting(name: str, settings_obj: Optional[Settings] = None) -> str:
    """Return a configured value or raise ConfigurationError.

    Used as a precondition by operations that cannot run without a
    collaborator credential (payment secret, identity service key, ...).
    """
    from backend.core.errors import ConfigurationError

    cfg = settings_obj or settings
    value = getattr(cfg, name, None)
    if not value:
        raise ConfigurationError(f"{name} is not configured")
    return value
