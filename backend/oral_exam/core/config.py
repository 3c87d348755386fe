import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):

    port: int = 8000
    environment: str = "development"
    app_name: str = "Oral Exam API"

    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://user:password@db:5432/oral_exam_db"
    )
    database_echo: bool = False

    # Magic links and admin credentials
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    magic_link_ttl_days: int = 7
    admin_token_ttl_hours: int = 12
    app_url: str = "http://localhost:5173"

    # Exam rules
    slot_prep_buffer_minutes: int = 15
    default_slot_minutes: int = 60
    questions_per_session: int = 3

    # Scoring (chat completions)
    azure_openai_endpoint: Optional[str] = ""
    azure_openai_api_key: Optional[str] = ""
    azure_openai_deployment: str = "gpt-4o-mini"
    azure_openai_api_version: str = "2024-03-01-preview"
    scoring_temperature: float = 0.2

    # Transcription
    azure_openai_endpoint_audio: Optional[str] = ""
    azure_openai_api_key_audio: Optional[str] = ""
    azure_openai_transcribe_deployment: str = "whisper-1"
    azure_openai_audio_api_version: str = "2025-03-01-preview"
    transcription_language: str = "he"

    # Recordings
    upload_base_dir: str = os.getenv("UPLOAD_BASE_DIR", "/app")
    storage_base_url: str = "http://localhost:8000/recordings"
    max_upload_size: int = 500 * 1024 * 1024
    recording_retention_days: int = 14

    # Mail
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = ""
    smtp_password: Optional[str] = ""
    smtp_use_tls: bool = True
    mail_from: str = "oral-exam@localhost"
    mail_from_name: str = "מערכת מבחנים בעל-פה"
    instructor_email: str = "instructor@localhost"

    cors_origins_str: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    slow_request_threshold: float = 1.0
    slow_stage_threshold: float = 60.0

    # Hebrew dates in emails
    default_timezone: str = "Asia/Jerusalem"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
