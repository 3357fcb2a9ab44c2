import os
from dataclasses import dataclass, field
from typing import List, Optional

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DB_PATH = os.path.join(BASE_DIR, "inventory.db")


def _split_recipients(raw: str) -> List[str]:
    parts = [p.strip() for p in (raw or "").replace(";", ",").split(",")]
    return [p for p in parts if p]


@dataclass
class Config:
    secret_key: str = "dev-secret"
    database_url: str = f"sqlite:///{DB_PATH}"

    # Public origin override, e.g. https://inventory.example.org
    base_url: Optional[str] = None

    notify_transport: str = "email"  # "email" or "webhook"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_use_ssl: bool = False
    notify_from: str = ""
    notify_to: List[str] = field(default_factory=list)
    webhook_url: str = ""
    notify_timeout: float = 10.0

    log_level: str = "INFO"
    log_to_stdout: bool = True
    log_to_file: bool = False
    log_file: str = "logs/lab_inventory.log"
    log_max_bytes: int = 2 * 1024 * 1024
    log_backups: int = 3

    @classmethod
    def from_env(cls, environ=None) -> "Config":
        env = os.environ if environ is None else environ
        smtp_user = env.get("SMTP_USER", "").strip()
        return cls(
            secret_key=env.get("SECRET_KEY", "dev-secret"),
            database_url=env.get("DATABASE_URL", f"sqlite:///{DB_PATH}"),
            base_url=(env.get("BASE_URL") or "").strip() or None,
            notify_transport=env.get("NOTIFY_TRANSPORT", "email").strip().lower(),
            smtp_host=env.get("SMTP_HOST", "smtp.gmail.com").strip(),
            smtp_port=int(env.get("SMTP_PORT", "587")),
            smtp_user=smtp_user,
            smtp_pass=env.get("SMTP_PASS", "").strip(),
            smtp_use_ssl=env.get("SMTP_USE_SSL", "false").lower() == "true",
            notify_from=env.get("NOTIFY_FROM", "").strip()
            or (f"Lab Inventory <{smtp_user}>" if smtp_user else ""),
            notify_to=_split_recipients(env.get("NOTIFY_TO", "")),
            webhook_url=env.get("WEBHOOK_URL", "").strip(),
            notify_timeout=float(env.get("NOTIFY_TIMEOUT", "10")),
            log_level=env.get("LOG_LEVEL", "INFO").strip(),
            log_to_stdout=env.get("LOG_TO_STDOUT", "true").lower() == "true",
            log_to_file=env.get("LOG_TO_FILE", "false").lower() == "true",
            log_file=env.get("LOG_FILE", "logs/lab_inventory.log"),
            log_max_bytes=int(env.get("LOG_MAX_BYTES", str(2 * 1024 * 1024))),
            log_backups=int(env.get("LOG_BACKUPS", "3")),
        )

    def flask_settings(self) -> dict:
        return {
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "SECRET_KEY": self.secret_key,
        }
