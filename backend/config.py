import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_list(name: str, fallback: str = "") -> List[str]:
    raw_value = os.getenv(name, fallback)
    if not raw_value:
        return []
    return [item.strip() for item in raw_value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    backend_url: str = _require_env("POS_BACKEND_URL")
    backend_username: str | None = os.getenv("POS_BACKEND_USERNAME")
    backend_password: str | None = os.getenv("POS_BACKEND_PASSWORD")
    backend_password_encrypted: str | None = os.getenv("POS_BACKEND_PASSWORD_ENCRYPTED")
    encryption_key: str | None = os.getenv("ENCRYPTION_KEY")
    request_timeout_seconds: float = float(os.getenv("POS_REQUEST_TIMEOUT_SECONDS", "15"))
    walk_in_customer: str = os.getenv("POS_WALK_IN_CUSTOMER", "Walking Customer")
    price_list: str = os.getenv("POS_PRICE_LIST", "Standard Selling")
    taxes_template: str = os.getenv("POS_TAXES_TEMPLATE", "")
    default_warehouse: str = os.getenv("POS_DEFAULT_WAREHOUSE", "")
    default_uom: str = os.getenv("POS_DEFAULT_UOM", "Nos")
    max_open_tabs: int = int(os.getenv("POS_MAX_OPEN_TABS", "6"))
    max_new_tabs: int = int(os.getenv("POS_MAX_NEW_TABS", "4"))
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_service_role_key: str | None = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    allowed_origins: List[str] = field(
        default_factory=lambda: _get_list("ALLOWED_ORIGINS", "*")
    )

    @property
    def action_log_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


settings = Settings()
