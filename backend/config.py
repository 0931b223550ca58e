"""
Configuration management for the application.
Loads settings from environment variables using Pydantic Settings.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./invoices_local.sqlite"
    DATABASE_ECHO: bool = False

    @property
    def database_url_async(self) -> str:
        """
        Transform DATABASE_URL to use the appropriate async driver.
        - PostgreSQL: postgresql+asyncpg://...
        - SQLite: sqlite+aiosqlite:///...
        """
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.DATABASE_URL

    # Security
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Application
    APP_NAME: str = "Invoice SaaS API"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Email Configuration (Postmark)
    POSTMARK_ENABLED: bool = True
    POSTMARK_SERVER_TOKEN: str = ""
    POSTMARK_FROM_EMAIL: str = "invoices@example.com"
    POSTMARK_FROM_NAME: str = "SaaS Invoice Tool"
    EMAIL_TEST_MODE: bool = False

    # Cloudflare R2 Configuration (invoice PDFs)
    R2_ENDPOINT_URL: str = ""
    R2_ACCESS_KEY_ID: str = ""
    R2_SECRET_ACCESS_KEY: str = ""
    R2_BUCKET_NAME: str = ""
    R2_PUBLIC_URL: Optional[str] = None

    # Razorpay Payment Configuration
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    RAZORPAY_STARTER_PLAN_ID: str = ""
    RAZORPAY_PRO_PLAN_ID: str = ""
    RAZORPAY_TOTAL_COUNT: int = 12  # Billing cycles per subscription

    # Plan limits
    FREE_PLAN_INVOICE_LIMIT: int = 5  # Lifetime
    STARTER_PLAN_MONTHLY_LIMIT: int = 50
    PRO_PLAN_MONTHLY_LIMIT: Optional[int] = 100  # "null" in the environment = unlimited

    # Recurring invoices
    RECURRING_SCHEDULER_ENABLED: bool = True
    RECURRING_INVOICE_CHECK_HOURS: int = 24
    RECURRING_INVOICE_DUE_DAYS: int = 7

    # Rendering
    INVOICE_CURRENCY: str = "INR"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_parse_none_str="null",
        extra="ignore"
    )


# Singleton instance - import this in other modules
settings = Settings()
