from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / "ConsentPortal"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000

    # Base URL of the public consent page; links are <client_url>/consent?token=...
    client_url: str = "http://localhost:5173"
    min_consented_name_length: int = 2
    # Resending to a completed record re-delivers the original link as a receipt.
    allow_resend_completed: bool = True
    max_page_size: int = 100

    # argon2 hash of the operator API key. Operator routes are disabled while unset.
    operator_key_hash: str | None = None

    email_backend: Literal["console", "smtp"] = "console"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0
    default_from_email: str = "no-reply@localhost"
    sender_name: str = "Consent Portal"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "db.sqlite"

    @property
    def templates_dir(self) -> Path:
        return Path(__file__).parent / "templates"

    model_config = {"env_prefix": "CONSENT_"}


settings = Settings()
