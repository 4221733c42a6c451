# pokebot/command_router.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .ai_intent import IntentResult
from .config import Settings


@dataclass(frozen=True)
class Command:
    action: str  # start_builder | browse_category | show_menu | show_info | greet
    product_slug: Optional[str] = None
    category_keyword: Optional[str] = None


def command_for_intent(result: IntentResult, settings: Settings) -> Command:
    intent = (result.intent or "unknown").strip().upper()

    if intent == "START_BUILDER":
        size = (result.size_preference or "").strip().lower()
        slug = settings.large_product_slug if size == "grande" else settings.default_product_slug
        return Command(action="start_builder", product_slug=slug)

    if intent == "CATEGORY_FILTER":
        kw = (result.category_keyword or "").strip()
        if kw:
            return Command(action="browse_category", category_keyword=kw)
        return Command(action="show_menu")

    if intent == "MENU_QUERY":
        return Command(action="show_menu")

    if intent == "INFO":
        return Command(action="show_info")

    return Command(action="greet")
