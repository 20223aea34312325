from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """
    App configuration.

    Read from `config.env` (non-dot env file) and `.env` at the repository root,
    then from the process environment.
    """

    model_config = SettingsConfigDict(
        env_file=(
            str(_PROJECT_ROOT / "config.env"),
            str(_PROJECT_ROOT / ".env"),
            "config.env",
            ".env",
        ),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    app_name: str = Field(default="Confeitaria Pro", validation_alias="APP_NAME")

    db_host: str = Field(default="localhost", validation_alias="DB_HOST")
    db_port: int = Field(default=5432, validation_alias="DB_PORT")
    db_user: str = Field(default="confeitaria", validation_alias="DB_USER")
    db_password: str = Field(default="confeitaria", validation_alias="DB_PASSWORD")
    db_name: str = Field(default="confeitaria", validation_alias="DB_NAME")
    # Full SQLAlchemy URL; takes precedence over the DB_* parts (tests use sqlite://)
    database_url_override: str | None = Field(default=None, validation_alias="DATABASE_URL")

    secret_key: str = Field(default="CHANGE_THIS_IN_PRODUCTION", validation_alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 12, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    cors_origins: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS"
    )

    # Shared secret sent by Cakto in the x-cakto-secret header
    cakto_webhook_secret: str = Field(default="", validation_alias="CAKTO_WEBHOOK_SECRET")

    # Transactional email: Resend HTTP API when a key is set, SMTP otherwise
    resend_api_key: str = Field(default="", validation_alias="RESEND_API_KEY")
    resend_api_url: str = Field(default="https://api.resend.com/emails", validation_alias="RESEND_API_URL")
    smtp_host: str = Field(default="smtp.gmail.com", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_user: str = Field(default="", validation_alias="SMTP_USER")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, validation_alias="SMTP_USE_TLS")
    email_from: str = Field(default="noreply@confeitariapro.com.br", validation_alias="EMAIL_FROM")
    email_from_name: str = Field(default="Confeitaria Pro", validation_alias="EMAIL_FROM_NAME")
    login_url: str = Field(default="https://www.confeitariapro.com.br/login", validation_alias="LOGIN_URL")

    trial_days: int = Field(default=7, validation_alias="TRIAL_DAYS")
    # Days an expired subscription keeps working before the API answers 402
    subscription_grace_days: int = Field(default=2, validation_alias="SUBSCRIPTION_GRACE_DAYS")

    currency_symbol: str = Field(default="R$", validation_alias="CURRENCY_SYMBOL")
    uploads_dir: Path = Field(default=_PROJECT_ROOT / "back" / "uploads", validation_alias="UPLOADS_DIR")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key or (self.smtp_user and self.smtp_password))

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        # SQLModel uses SQLAlchemy under the hood; this uses the psycopg driver (v3).
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
