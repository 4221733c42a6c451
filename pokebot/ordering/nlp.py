# pokebot/ordering/nlp.py
from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterable, List

from .menu import Option

# ----------------------------
# Synonyms (base, MX-friendly)
# Keep this reasonably sized; the AI interpreter handles the long tail.
# ----------------------------
_DEFAULT_SYNONYMS: Dict[str, str] = {
    # diminutives
    "arrocito": "arroz",
    "salmoncito": "salmon",
    "atuncito": "atun",
    "pollito": "pollo",
    # regional names
    "palta": "aguacate",
    "avocado": "aguacate",
    "elote": "maiz",
    "choclo": "maiz",
    # common typos
    "salmom": "salmon",
    "aguacte": "aguacate",
    "pepino japones": "pepino",
}

# ----------------------------
# Keyword sets
# ----------------------------
CANCEL_KEYWORDS = ("cancelar", "salir", "menu principal")

# Compared against the whole normalized message.
DONE_TOKENS = frozenset({"listo", "siguiente", "ya esta", "eso es todo", "done"})

GREETING_KEYWORDS = frozenset({"hola", "buenos dias", "buenas tardes", "buenas noches", "hey", "hi"})

MENU_KEYWORDS = frozenset({"menu", "carta", "ver menu", "ver menu completo", "menu principal"})

BUILD_KEYWORDS = ("armar", "personalizar", "arma tu", "armo")

CONFIRM_KEYWORDS = ("confirmar", "confirmo", "si confirmo")

PICKUP_KEYWORDS = ("recoger", "tienda", "pickup", "paso por")
DELIVERY_KEYWORDS = ("envio", "domicilio", "delivery", "a mi casa")

# ----------------------------
# Regex helpers
# ----------------------------
# Punctuation/emoji to spaces (keep letters/numbers/spaces)
_PUNCT_RE = re.compile(r"[^\w\s]+")
_WS_RE = re.compile(r"\s+")


# ----------------------------
# Canonicalization pipeline
# ----------------------------
def _strip_accents(s: str) -> str:
    s = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in s if unicodedata.category(ch) != "Mn")


def fold_text(s: str) -> str:
    """
    Case- and accent-insensitive form used for substring matching:
    "Menú Principal" -> "menu principal". Punctuation is kept.
    """
    return _WS_RE.sub(" ", _strip_accents((s or "").strip().lower())).strip()


def normalize_text(s: str) -> str:
    """
    Folded text with punctuation and emoji turned into spaces:
    "✅ Listo!" -> "listo"
    """
    s = fold_text(s)
    s = _PUNCT_RE.sub(" ", s).replace("_", " ")
    return _WS_RE.sub(" ", s).strip()


def apply_synonyms(s: str, synonyms: Dict[str, str] | None = None) -> str:
    """
    Word-boundary synonym replacement on normalized text.
    Longer keys first so "pepino japones" wins over a shorter key.
    """
    if not s:
        return s
    syn = synonyms if synonyms is not None else _DEFAULT_SYNONYMS
    for k in sorted((k for k in syn if k), key=len, reverse=True):
        k_norm = normalize_text(k)
        v_norm = normalize_text(syn[k])
        if not k_norm or not v_norm:
            continue
        s = re.sub(rf"(?<!\w){re.escape(k_norm)}(?!\w)", v_norm, s)
    return _WS_RE.sub(" ", s).strip()


# ----------------------------
# Intent-ish checks
# ----------------------------
def contains_any(text: str, keywords: Iterable[str]) -> bool:
    t = fold_text(text)
    return any(fold_text(k) in t for k in keywords)


def is_cancel(text: str) -> bool:
    return contains_any(text, CANCEL_KEYWORDS)


def is_done(text: str) -> bool:
    return normalize_text(text) in DONE_TOKENS


def is_greeting(text: str) -> bool:
    return normalize_text(text) in GREETING_KEYWORDS


def is_menu_request(text: str) -> bool:
    return normalize_text(text) in MENU_KEYWORDS


def is_build_request(text: str) -> bool:
    return contains_any(text, BUILD_KEYWORDS)


def is_confirm(text: str) -> bool:
    return contains_any(text, CONFIRM_KEYWORDS)


def classify_delivery(text: str) -> str | None:
    if contains_any(text, PICKUP_KEYWORDS):
        return "pickup"
    if contains_any(text, DELIVERY_KEYWORDS):
        return "delivery"
    return None


# ----------------------------
# Option matching
# ----------------------------
def direct_matches(text: str, options: List[Option], synonyms: Dict[str, str] | None = None) -> List[int]:
    """
    Ids of options whose name appears (case/accent-insensitive) as a substring
    of the user's text, in catalog order, deduplicated.
    The text is also checked after synonym expansion ("palta" -> "aguacate").
    """
    raw = fold_text(text)
    if not raw:
        return []
    expanded = apply_synonyms(normalize_text(text), synonyms)

    out: List[int] = []
    for opt in options:
        if not opt.is_available:
            continue
        name = fold_text(opt.name)
        norm = normalize_text(opt.name)
        if not name:
            continue
        if (name in raw or (norm and norm in expanded)) and opt.id not in out:
            out.append(opt.id)
    return out
