import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_origins(raw: str) -> List[str]:
    if raw.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    """Runtime configuration, read from the environment (or a .env file)."""

    data_dir: Path = Path("data")
    uploads_dir: Path = Path("uploads")
    environment: str = "development"
    jwt_expires_minutes: int = 60
    cookie_name: str = "token"
    store_lenient_load: bool = False
    max_upload_files: int = 5
    max_upload_bytes: int = 5 * 1024 * 1024
    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def secret_file(self) -> Path:
        return self.data_dir / "jwt-secret.txt"

    @property
    def cookie_secure(self) -> bool:
        return self.environment == "production"

    @property
    def token_max_age(self) -> int:
        """Cookie lifetime in seconds, matching the token expiry."""
        return self.jwt_expires_minutes * 60

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.getenv("DATA_DIR", "data")),
            uploads_dir=Path(os.getenv("UPLOADS_DIR", "uploads")),
            environment=os.getenv("ENVIRONMENT", "development"),
            jwt_expires_minutes=int(os.getenv("JWT_EXPIRES_MINUTES", "60")),
            store_lenient_load=_env_bool("STORE_LENIENT_LOAD"),
            max_upload_files=int(os.getenv("MAX_UPLOAD_FILES", "5")),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))),
            allowed_origins=_parse_origins(os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )
