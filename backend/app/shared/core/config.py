from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "WhatsApp Inbox"
    API_PREFIX: str = "/api"
    CORS_ORIGIN: str = "http://localhost:3000"
    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"

    # WhatsApp Cloud API webhook
    WHATSAPP_VERIFY_TOKEN: str = "your_verify_token"  # Must match the token configured in Meta dashboard

    # Local send path: simulated delivery lifecycle (seconds)
    STATUS_SIM_ENABLED: bool = True
    STATUS_SIM_DELIVERED_DELAY_SECONDS: float = 2.0
    STATUS_SIM_READ_DELAY_SECONDS: float = 3.0

    # Ranked conversation list cache
    CONVERSATION_CACHE_TTL_SECONDS: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
