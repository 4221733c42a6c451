from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

# Load .env locally (safe in prod too)
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    pass


PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_MENU_PATH = PROJECT_ROOT / "data" / "menu.json"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", ""}


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


class PricingPolicy(str, Enum):
    # Slot surcharge by count, every option's own surcharge always charged.
    COUNT = "count"
    # First `included` selections (insertion order) free of both surcharges.
    ORDER_INDEX = "order_index"


def _pricing_policy() -> PricingPolicy:
    raw = os.getenv("PRICING_POLICY", PricingPolicy.COUNT.value).strip().lower()
    try:
        return PricingPolicy(raw)
    except ValueError:
        return PricingPolicy.COUNT


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./pokebot.db")
    menu_path: str = os.getenv("MENU_PATH", str(DEFAULT_MENU_PATH))

    llm_enabled: bool = _flag("LLM_ENABLED", "1")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "").strip()
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
    llm_timeout_seconds: float = _float("LLM_TIMEOUT_SECONDS", 8.0)

    whatsapp_phone_id: str = os.getenv("WHATSAPP_PHONE_ID", "").strip()
    whatsapp_access_token: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "").strip()
    whatsapp_verify_token: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "").strip()
    graph_version: str = os.getenv("GRAPH_VERSION", "v21.0").strip()

    debounce_seconds: float = _float("DEBOUNCE_SECONDS", 5.0)
    session_ttl_minutes: int = _int("SESSION_TTL_MINUTES", 30)

    default_product_slug: str = os.getenv("DEFAULT_PRODUCT_SLUG", "poke-mediano").strip()
    large_product_slug: str = os.getenv("LARGE_PRODUCT_SLUG", "poke-grande").strip()
    currency_symbol: str = os.getenv("CURRENCY_SYMBOL", "$")
    business_name: str = os.getenv("BUSINESS_NAME", "Yoko Poke")
    business_hours: str = os.getenv("BUSINESS_HOURS", "Lunes a domingo, 1:00 p.m. a 10:00 p.m.")
    business_location: str = os.getenv("BUSINESS_LOCATION", "")

    # Business-rule switches
    pricing_policy: PricingPolicy = _pricing_policy()
    done_enforces_minimum: bool = _flag("DONE_ENFORCES_MINIMUM", "0")

    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    @property
    def session_ttl_seconds(self) -> float:
        return self.session_ttl_minutes * 60.0

    @property
    def llm_available(self) -> bool:
        return self.llm_enabled and bool(self.openai_api_key)


settings = Settings()
