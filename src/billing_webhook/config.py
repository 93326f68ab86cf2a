from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_webhook_tolerance: int = 300

    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Reference price ids; multilingual and connected both map to the connected tier
    stripe_price_basic: str | None = None
    stripe_price_premium: str | None = None
    stripe_price_multilingual: str | None = None
    stripe_price_connected: str | None = None

    host: str = "0.0.0.0"
    port: int = 3003
    log_level: str = "INFO"
