from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the Expense Notification Service"""

    # Application settings
    service_name: str = "expense-notifications"
    log_level: str = "INFO"
    environment: str = "dev"

    # Firebase settings
    firebase_secret: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # FCM settings
    fcm_batch_size: int = 500  # FCM accepts up to 500 messages per send_each call
    android_channel_id: str = "expense_channel"
    click_action: str = "FLUTTER_NOTIFICATION_CLICK"

    # Notification content settings
    default_actor_name: str = "Someone"

    # Token cleanup job
    token_cleanup_enabled: bool = True
    token_cleanup_interval_hours: int = 24

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


# Create settings instance
settings = Settings()
