"""Application configuration loaded from environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Microsoft Graph
    graph_client_id: str = ""
    graph_tenant_id: str = "common"
    graph_user_scopes: list[str] = ["User.Read", "Files.Read"]
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    graph_timeout_seconds: float = 30.0

    # Sharing link used until one is configured through the API
    default_sheet_url: str = ""

    # Redis
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_db: int = 0
    redis_timeout_seconds: float = 2.0
    cache_key_prefix: str = "vocab"
    metadata_cache_ttl_seconds: int = 3600

    # Token lifetime buffers
    token_valid_buffer_seconds: int = 300
    token_refresh_buffer_seconds: int = 600

    # Backend
    backend_host: str = "0.0.0.0"
    backend_port: int = 3001

    # Paths (relative to project root)
    upload_dir: str = "data/uploads"

    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent.parent

    model_config = {"env_file": ".env", "env_prefix": "", "extra": "ignore"}


settings = Settings()
