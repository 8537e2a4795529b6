from pathlib import Path

from pydantic_settings import BaseSettings

_BACKEND_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Simple Chat"
    debug: bool = False

    # Storage
    database_url: str = f"sqlite:///{_BACKEND_DIR / 'simplechat.db'}"
    upload_dir: Path = _BACKEND_DIR / "uploads"

    # LLM (any OpenAI-compatible endpoint)
    llm_api_key: str = ""
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_app_title: str = "Simple Chat"
    default_model: str = "openrouter/free"

    # Chat
    stream_timeout_seconds: float = 300.0  # 5 minutes
    title_preview_length: int = 50
    idempotency_key_max_length: int = 64
    max_message_length: int = 10000
    send_rate_limit: int = 10  # sends per user per window
    send_rate_window_seconds: float = 60.0

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: list[str] = ["http://localhost:5173"]

    model_config = {
        "env_file": str(_BACKEND_DIR / ".env"),
        "env_prefix": "SIMPLECHAT_",
    }


settings = Settings()
