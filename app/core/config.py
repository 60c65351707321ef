"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import BaseModel, SecretStr, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Comma-separated client origins allowed by CORS. Empty = default list in app.main.
    cors_origins: str = ""
    # Base URL the client uses to reach this API (returned to the checkout page).
    public_base_url: str = "http://localhost:5000"
    # Trusted proxy IPs (comma-separated). Used for X-Forwarded-For in production.
    trusted_proxy_ips: str = ""

    # ===========================================
    # DATABASE (content store)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # PAYMENT GATEWAY (Razorpay)
    # ===========================================
    gateway_key_id: str  # Required, no default
    gateway_key_secret: SecretStr  # Required, server-only
    gateway_api_base: str = "https://api.razorpay.com/v1"
    gateway_timeout_seconds: float = 5.0
    gateway_retry_max_attempts: int = 2
    gateway_retry_backoff_seconds: float = 0.5
    gateway_merchant_name: str = "Interview Prep Hub"

    # ===========================================
    # PRICING (major units, INR)
    # ===========================================
    default_currency: str = "INR"
    default_module_price: int = 499
    default_global_price: int = 1999

    # ===========================================
    # IDENTITY PROVIDER
    # ===========================================
    identity_jwt_secret: SecretStr  # Required, no default
    identity_jwt_algorithm: str = "HS256"
    identity_jwt_audience: str | None = None

    # ===========================================
    # CHECKOUT
    # ===========================================
    checkout_token_secret: SecretStr  # Required, no default
    # None = checkout tokens never expire (gateway completion is unbounded in time).
    checkout_token_max_age: int | None = None

    # ===========================================
    # ENTITLEMENT WRITES
    # ===========================================
    entitlement_write_max_attempts: int = 3
    entitlement_write_backoff_seconds: float = 0.5

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None  # Optional; admin routes return 403 when unset

    # ===========================================
    # WORKERS
    # ===========================================
    celery_task_retry_delay: int = 60
    celery_task_max_retries: int = 5

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5
    # Durable record of verified payments that could not be turned into entitlements.
    reconciliation_log_file: str | None = "logs/reconciliation.log"

    @field_validator("gateway_retry_max_attempts")
    @classmethod
    def validate_gateway_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("gateway_retry_max_attempts must be at least 1")
        return v

    @field_validator("entitlement_write_max_attempts")
    @classmethod
    def validate_write_attempts(cls, v: int) -> int:
        """A verified payment must be written at least twice before giving up."""
        if v < 2:
            raise ValueError("entitlement_write_max_attempts must be at least 2")
        return v

    @field_validator("default_module_price", "default_global_price")
    @classmethod
    def validate_default_price(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("default prices must be positive")
        return v

    @field_validator("checkout_token_secret")
    @classmethod
    def validate_checkout_secret(cls, v: SecretStr) -> SecretStr:
        """Ensure checkout token secret is reasonably secure."""
        if len(v.get_secret_value()) < 16:
            raise ValueError("checkout_token_secret must be at least 16 characters")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_proxy_ips_set(self) -> set[str]:
        """Get trusted proxy IPs as a set."""
        return {ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


class GatewayConfig(BaseModel):
    """Gateway credentials and limits, injected into the order service and signature verifier."""

    key_id: str
    key_secret: SecretStr
    api_base: str = "https://api.razorpay.com/v1"
    timeout_seconds: float = 5.0
    retry_max_attempts: int = 2
    retry_backoff_seconds: float = 0.5

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, s: "Settings") -> "GatewayConfig":
        return cls(
            key_id=s.gateway_key_id,
            key_secret=s.gateway_key_secret,
            api_base=s.gateway_api_base,
            timeout_seconds=s.gateway_timeout_seconds,
            retry_max_attempts=s.gateway_retry_max_attempts,
            retry_backoff_seconds=s.gateway_retry_backoff_seconds,
        )


settings = Settings()
