from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..errors import SessionStoreError
from ..models import ChatSession

logger = logging.getLogger(__name__)


class SessionMode(str, Enum):
    NORMAL = "NORMAL"
    BUILDER = "BUILDER"
    CHECKOUT = "CHECKOUT"


class CheckoutStep(str, Enum):
    COLLECT_NAME = "COLLECT_NAME"
    COLLECT_DELIVERY = "COLLECT_DELIVERY"
    SHOW_SUMMARY = "SHOW_SUMMARY"


class BuilderState(BaseModel):
    product_slug: str
    step_index: int = 0
    # step id -> option ids in insertion order
    selections: Dict[int, List[int]] = Field(default_factory=dict)


class CheckoutState(BaseModel):
    product_slug: str
    selections: Dict[int, List[int]] = Field(default_factory=dict)
    total_price: int = 0
    checkout_step: CheckoutStep = CheckoutStep.COLLECT_NAME
    customer_name: Optional[str] = None
    delivery_method: Optional[str] = None  # pickup | delivery


class SessionState(BaseModel):
    mode: SessionMode = SessionMode.NORMAL
    builder: Optional[BuilderState] = None
    checkout: Optional[CheckoutState] = None
    last_interaction: float = 0.0
    # debounce buffer
    pending_messages: List[str] = Field(default_factory=list)
    buffer_until: float = 0.0

    @classmethod
    def fresh(cls, now: float | None = None) -> "SessionState":
        return cls(last_interaction=time.time() if now is None else now)

    def reset_flow(self) -> "SessionState":
        """Back to NORMAL mode, keeping the debounce buffer and timestamp."""
        return self.model_copy(
            update={"mode": SessionMode.NORMAL, "builder": None, "checkout": None},
            deep=True,
        )

    def is_stale(self, now: float, ttl_seconds: float) -> bool:
        if self.mode is SessionMode.NORMAL:
            return False
        return bool(self.last_interaction) and (now - self.last_interaction) > ttl_seconds


def load_state(state_json: str | None) -> SessionState:
    try:
        v = json.loads(state_json or "{}")
        if not isinstance(v, dict):
            return SessionState.fresh()
        return SessionState.model_validate(v)
    except (json.JSONDecodeError, ValidationError):
        logger.warning("Discarding unreadable session state")
        return SessionState.fresh()


def dump_state(state: SessionState) -> str:
    return state.model_dump_json()


# -------------------
# Stores
# -------------------
class SessionStore(Protocol):
    def get(self, user_id: str) -> SessionState: ...

    def put(self, user_id: str, state: SessionState) -> None: ...

    def clear(self, user_id: str) -> None: ...


class InMemorySessionStore:
    """Process-local store. Stores serialized JSON so callers never share objects."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._rows: Dict[str, str] = {}
        self._clock = clock

    def get(self, user_id: str) -> SessionState:
        raw = self._rows.get(user_id)
        if raw is None:
            return SessionState.fresh(self._clock())
        return load_state(raw)

    def put(self, user_id: str, state: SessionState) -> None:
        self._rows[user_id] = dump_state(state)

    def clear(self, user_id: str) -> None:
        self.put(user_id, SessionState.fresh(self._clock()))


class SqlSessionStore:
    """One `whatsapp_sessions` row per phone number, state kept as JSON text."""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], float] = time.time) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def get(self, user_id: str) -> SessionState:
        db = self._session_factory()
        try:
            row = db.get(ChatSession, user_id)
            if row is None:
                return SessionState.fresh(self._clock())
            return load_state(row.state_json)
        except SQLAlchemyError:
            logger.exception("Error reading session for %s", user_id)
            return SessionState.fresh(self._clock())
        finally:
            db.close()

    def put(self, user_id: str, state: SessionState) -> None:
        db = self._session_factory()
        try:
            row = db.get(ChatSession, user_id)
            if row is None:
                row = ChatSession(phone=user_id)
                db.add(row)
            row.state_json = dump_state(state)
            row.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise SessionStoreError(f"Could not save session for {user_id}") from e
        finally:
            db.close()

    def clear(self, user_id: str) -> None:
        self.put(user_id, SessionState.fresh(self._clock()))
