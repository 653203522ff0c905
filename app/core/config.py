from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = "EduTrack"
    environment: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./edutrack.db"

    # JWT issued by the identity provider
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # slowapi limit string applied to session step saves
    step_save_rate_limit: str = "60/minute"

    # Step number that marks a session report as completed
    session_step_count: int = 3


settings = Settings()
