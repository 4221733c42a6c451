# pokebot/ai_intent.py
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import InterpreterError
from .ordering.menu import Option

logger = logging.getLogger(__name__)


class IntentResult(BaseModel):
    intent: str = "unknown"
    size_preference: Optional[str] = None  # mediano | grande
    category_keyword: Optional[str] = None


class SelectionInterpreter(Protocol):
    async def match_selections(self, text: str, options: List[Option]) -> List[int]: ...

    async def classify_intent(self, text: str) -> IntentResult: ...


INTENT_LABELS = ["START_BUILDER", "MENU_QUERY", "CATEGORY_FILTER", "INFO", "CHAT", "unknown"]

SELECTION_SYSTEM = """You are a waiter at a poke bowl restaurant helping a customer pick ingredients for ONE build step.
Return the ids of the options the customer intends to select.
Rules:
- Handle synonyms, slang and diminutives (e.g. "arrocito" -> "Arroz", "palta" -> "Aguacate").
- If the customer says "everything"/"todo", return every id.
- If the customer says "none"/"nada"/"skip", return an empty list.
- Never return ids that are not in the provided options. Ignore unrelated text.
"""

INTENT_SYSTEM = """You classify messages sent to a poke restaurant WhatsApp bot.
Intents:
- START_BUILDER: the customer explicitly wants to build/customize a bowl ("armar", "personalizar", "mediano", "grande", "sushi burger").
- MENU_QUERY: general menu questions ("que tienen", "ver menu").
- CATEGORY_FILTER: asks for a specific category ("bebidas", "postres", "entradas").
- INFO: opening hours, location.
- CHAT: greetings and small talk.
Use "unknown" when unsure.
"""

# JSON Schemas for Structured Outputs
SELECTION_SCHEMA: Dict[str, Any] = {
    "name": "step_selection",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "option_ids": {"type": "array", "items": {"type": "integer"}},
        },
        "required": ["option_ids"],
    },
    "strict": True,
}

INTENT_SCHEMA: Dict[str, Any] = {
    "name": "poke_intent",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "intent": {"type": "string", "enum": INTENT_LABELS},
            "size_preference": {"type": ["string", "null"], "enum": ["mediano", "grande", None]},
            "category_keyword": {"type": ["string", "null"]},
        },
        "required": ["intent", "size_preference", "category_keyword"],
    },
    "strict": True,
}


def _option_hints(options: List[Option]) -> List[Dict[str, Any]]:
    # Keep hints small to control cost + latency.
    return [{"id": o.id, "name": o.name} for o in options[:80]]


def parse_option_ids(raw: str, options: List[Option]) -> List[int]:
    """
    Decode the model output and keep only ids that belong to `options`,
    preserving the model's order, deduplicated.
    """
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise InterpreterError(f"Interpreter returned invalid JSON: {e}") from e

    ids = data.get("option_ids") if isinstance(data, dict) else data
    if not isinstance(ids, list):
        raise InterpreterError("Interpreter returned no option_ids list")

    valid = {o.id for o in options}
    out: List[int] = []
    for x in ids:
        if isinstance(x, int) and not isinstance(x, bool) and x in valid and x not in out:
            out.append(x)
    return out


def parse_intent(raw: str) -> IntentResult:
    try:
        result = IntentResult.model_validate_json(raw or "{}")
    except ValidationError as e:
        raise InterpreterError(f"Interpreter returned an invalid intent: {e}") from e
    if result.intent not in INTENT_LABELS:
        return IntentResult()
    return result


class OpenAIInterpreter:
    """
    Best-effort interpreter. Any error or timeout degrades to "no match" /
    "unknown" so a conversation never crashes on the AI layer.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def _complete(self, system: str, payload: Dict[str, Any], schema: Dict[str, Any]) -> str:
        resp = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
                ],
                # Structured Outputs: forces schema correctness
                response_format={"type": "json_schema", "json_schema": schema},
            ),
            timeout=self.settings.llm_timeout_seconds,
        )
        return resp.choices[0].message.content or ""

    async def match_selections(self, text: str, options: List[Option]) -> List[int]:
        if not (text or "").strip() or not options:
            return []
        try:
            raw = await self._complete(
                SELECTION_SYSTEM,
                {"message": text, "options": _option_hints(options)},
                SELECTION_SCHEMA,
            )
            return parse_option_ids(raw, options)
        except Exception:
            logger.warning("Selection interpreter failed; treating as no match", exc_info=True)
            return []

    async def classify_intent(self, text: str) -> IntentResult:
        if not (text or "").strip():
            return IntentResult()
        try:
            raw = await self._complete(INTENT_SYSTEM, {"message": text}, INTENT_SCHEMA)
            return parse_intent(raw)
        except Exception:
            logger.warning("Intent classifier failed; treating as unknown", exc_info=True)
            return IntentResult()


class NullInterpreter:
    """Used when the LLM layer is disabled or has no API key."""

    async def match_selections(self, text: str, options: List[Option]) -> List[int]:
        return []

    async def classify_intent(self, text: str) -> IntentResult:
        return IntentResult()


def build_interpreter(settings: Settings) -> SelectionInterpreter:
    if settings.llm_available:
        return OpenAIInterpreter(settings)
    logger.info("LLM disabled or OPENAI_API_KEY missing; using deterministic matching only")
    return NullInterpreter()
