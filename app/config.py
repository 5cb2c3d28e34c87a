from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "eMineral Pass"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./emineral.db"

    # Security settings
    secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Public verification
    public_base_url: str = "http://localhost:8000"
    display_timezone: str = "Asia/Kolkata"

    # Record lifecycle
    default_validity_hours: int = 24
    max_validity_hours: int = 168
    public_token_max_attempts: int = 5

    # QR code rendering
    qr_width: int = 300
    qr_margin: int = 2
    qr_error_correction: str = "H"
    qr_dark_color: str = "#000000"
    qr_light_color: str = "#FFFFFF"

    # Blob storage
    storage_root: str = "storage"
    storage_base_url: Optional[str] = None
    pdf_url_expiry_seconds: int = 2592000  # 30 days

    # PDF rendering
    # Not shipped with the repo. Download Noto Sans Devanagari (SIL OFL) from
    # https://fonts.google.com/noto/specimen/Noto+Sans+Devanagari and place the
    # Regular TTF here, or point DEVANAGARI_FONT_PATH at it. Without it Hindi
    # labels render with the default font.
    devanagari_font_path: str = "fonts/NotoSansDevanagari-Regular.ttf"

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def resolved_storage_base_url(self) -> str:
        return (self.storage_base_url or self.public_base_url).rstrip("/")


settings = Settings()
