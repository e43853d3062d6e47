# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
import base64
from typing import List
from pathlib import Path

class Settings(BaseSettings):
    # Storage settings
    # Default to SQLite; override via .env (STORAGE_BACKEND=json or sheets)
    storage_backend: str = "sqlite"
    db_url: str = "sqlite:///data/pdfvault.db"
    json_data_dir: str = "data/json"
    google_sa_json: str = ""
    google_sa_json_base64: str = ""
    sheets_spreadsheet_id: str = ""

    # Version binaries live outside the record store
    blob_dir: str = "data/blobs"
    max_version_bytes: int = 50 * 1024 * 1024

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    # Server-side read cache for annotation lists (seconds)
    annotation_cache_ttl: int = 5

    # ---- Sync client ----

    # Store calls that take longer than this are treated as failed
    # so the coordinator can fall back to the local cache.
    store_timeout_seconds: float = 10.0
    store_base_url: str = "http://localhost:8000"

    fallback_cache_dir: str = "data/fallback"
    # Roughly what a browser origin gets for local storage.
    fallback_cache_max_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Max serialized size of one fallback cache entry",
    )

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(Path(__file__).resolve().parent / ".env"),
        extra="ignore",
    )

    def resolved_google_sa_json(self) -> str:
        """
        Return the path to the service account JSON.
        If GOOGLE_SA_JSON_BASE64 is set, decode it to a temp file.
        Otherwise return GOOGLE_SA_JSON path.
        """
        if self.google_sa_json_base64:
            import tempfile

            decoded = base64.b64decode(self.google_sa_json_base64)
            temp_file = tempfile.NamedTemporaryFile(mode='w', delete=False, suffix='.json')
            temp_file.write(decoded.decode('utf-8'))
            temp_file.close()
            return temp_file.name

        return self.google_sa_json

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
