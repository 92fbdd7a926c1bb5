"""Configuration management for the device health Lambda functions."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # AWS S3 configuration - one bucket holds every device health document
    HEALTH_DATA_BUCKET_NAME: str = "device-health-data"

    # Azure OpenAI configuration (for questionnaire analysis)
    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_API_KEY: str = ""
    AZURE_OPENAI_DEPLOYMENT: str = "gpt-4o-mini"
    AZURE_OPENAI_API_VERSION: str = "2024-02-15-preview"
    QUIZ_ANALYSIS_TIMEOUT_SECONDS: float = 20.0

    # Alert scanner configuration
    ALERT_SCAN_WINDOW_HOURS: int = 24
    ALERT_DEDUP_WINDOW_DAYS: int = 7

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
