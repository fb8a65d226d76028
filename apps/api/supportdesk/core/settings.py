from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./supportdesk.db"
    # DB bootstrap (dev only)
    AUTO_DB_BOOTSTRAP: bool = False

    JWT_SECRET: str = "dev-secret"

    # Object Storage (S3 compatible)
    OBJECT_STORAGE_ENDPOINT: str | None = None
    OBJECT_STORAGE_BUCKET: str | None = None
    OBJECT_STORAGE_REGION: str = "ap-southeast-2"
    OBJECT_STORAGE_ACCESS_KEY_ID: str | None = None
    OBJECT_STORAGE_SECRET_ACCESS_KEY: str | None = None

    # Attachments
    ATTACHMENT_MAX_FILE_SIZE_BYTES: int = 10 * 1024 * 1024
    ATTACHMENT_TICKET_MAX_COUNT: int = 10
    ATTACHMENT_COMMENT_MAX_COUNT: int = 5
    ATTACHMENT_UPLOAD_URL_TTL_SECONDS: int = 300
    ATTACHMENT_DOWNLOAD_URL_TTL_SECONDS: int = 300
    ATTACHMENT_MAX_FILE_NAME_LENGTH: int = 120
    ATTACHMENT_ALLOWED_MIME_TYPES: str = "image/jpeg,image/png,image/webp,application/pdf,text/plain,text/csv"

    # Orphan reaper
    ATTACHMENT_PENDING_MAX_AGE_SECONDS: int = 3600
    ATTACHMENT_REAPER_ENABLED: bool = True
    ATTACHMENT_REAPER_INTERVAL_SECONDS: int = 900
    ATTACHMENT_DELETE_MAX_ATTEMPTS: int = 3
    ATTACHMENT_DELETE_RETRY_DELAY_SECONDS: float = 0.5

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
