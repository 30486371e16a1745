# lifemate/core/config.py
from typing import Optional
from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    APP_NAME: str = "LifeMate"
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:3000"
    # comma separated list of allowed origins
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # MongoDB
    MONGODB_URI: str = "mongodb://localhost:27017/lifemate"
    MONGODB_DB: str = "lifemate"
    MONGODB_TIMEOUT_MS: int = 5000

    # JWT
    JWT_SECRET: str = "change-me"  # override in .env / secrets
    JWT_REFRESH_SECRET: str = "change-me-too"
    JWT_ALGORITHM: str = "HS256"
    # 7 days; long for an access token but kept configurable
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    OAUTH_EXCHANGE_TOKEN_EXPIRE_SECONDS: int = 60
    OAUTH_PENDING_TOKEN_EXPIRE_MINUTES: int = 15
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # Passwords
    BCRYPT_ROUNDS: int = 12
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCK_DURATION_MINUTES: int = 120

    # OTP
    OTP_SECRET: Optional[str] = None  # falls back to JWT_SECRET
    # log the code instead of failing when email delivery fails (never in production)
    OTP_DEV_FALLBACK: bool = False

    # SMTP
    EMAIL_HOST: str = "smtp.gmail.com"
    EMAIL_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None
    EMAIL_FROM: str = "noreply@lifemate.com"
    EMAIL_FROM_NAME: str = "LifeMate"
    SMTP_TIMEOUT_SECONDS: float = 10.0

    # S3 / R2 (blob storage)
    S3_BUCKET: Optional[str] = None
    S3_ENDPOINT: Optional[AnyUrl] = None
    S3_REGION: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    # public base url for stored objects; presigned urls are used when unset
    S3_PUBLIC_BASE_URL: Optional[str] = None
    S3_PRESIGN_EXPIRES_SECONDS: int = 7 * 24 * 3600
    S3_TIMEOUT_SECONDS: int = 15
    LOCAL_UPLOAD_DIR: str = "uploads"
    RESUME_STORAGE_FOLDER: str = "resumes"
    DOCUMENT_STORAGE_FOLDER: str = "lifemate/jobseekers"

    # Google OAuth
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_CALLBACK_URL: str = "http://localhost:8000/api/oauth/google/callback"
    GOOGLE_TIMEOUT_SECONDS: float = 10.0
    OAUTH_SUCCESS_REDIRECT: Optional[str] = None
    OAUTH_FAILURE_REDIRECT: Optional[str] = None
    # same-email accounts are linked to the Google identity on completion
    OAUTH_LINK_BY_VERIFIED_EMAIL: bool = True
    OAUTH_LINK_REQUIRES_VERIFIED_ACCOUNT: bool = False

    # refresh token cookie
    REFRESH_COOKIE_NAME: str = "refreshToken"
    REFRESH_COOKIE_SECURE: bool = False
    REFRESH_COOKIE_SAMESITE: str = "lax"
    REFRESH_COOKIE_PATH: str = "/"

    # Pydantic v2 settings: read from .env file; built once and read-only
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

    @property
    def otp_secret(self) -> str:
        return self.OTP_SECRET or self.JWT_SECRET

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.BACKEND_CORS_ORIGINS.split(",") if o.strip()]


# single shared settings instance
settings = Settings()
