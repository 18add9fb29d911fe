"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version
    VERSION: str = "0.1.0"

    # Database
    DATABASE_URL: str = "sqlite:///./briefdesk.db"
    AUTO_CREATE_SCHEMA: bool = False

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 24

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/auth/google/callback"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (invite links, redirects) and public API base (Stripe return URLs)
    FRONTEND_URL: str = "http://localhost:3000"
    APP_BASE_URL: str = "http://localhost:8000"

    # AI providers
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    GEMINI_API_KEY: str = ""
    GEMINI_VISION_MODEL: str = "gemini-1.5-flash"
    GEMINI_ANALYSIS_MODEL: str = "gemini-2.5-flash"
    AI_TIMEOUT_SECONDS: float = 60.0

    # Billing
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "eur"
    # Demo mode provisions provider organizations at signup without payment
    DEMO_MODE: bool = False

    # Storage tiers (first configured wins: drive -> s3 -> local)
    GOOGLE_DRIVE_CREDENTIALS_FILE: str = ""  # Service account JSON
    GOOGLE_DRIVE_FOLDER_ID: str = ""
    S3_BUCKET: str = ""
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    S3_PUBLIC_BASE_URL: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    LOCAL_STORAGE_PATH: str = "uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 10
    RATE_LIMIT_API: int = 120

    # Worker
    WORKER_POLL_INTERVAL: int = 5
    WORKER_BATCH_SIZE: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV not in ("dev", "test")

    @property
    def drive_enabled(self) -> bool:
        return bool(self.GOOGLE_DRIVE_CREDENTIALS_FILE and self.GOOGLE_DRIVE_FOLDER_ID)

    @property
    def s3_enabled(self) -> bool:
        return bool(self.S3_BUCKET)

    @property
    def stripe_enabled(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)

    @property
    def openai_enabled(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    @property
    def gemini_enabled(self) -> bool:
        return bool(self.GEMINI_API_KEY)


settings = Settings()
