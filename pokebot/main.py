# pokebot/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from .ai_intent import SelectionInterpreter, build_interpreter
from .config import Settings, settings as default_settings
from .db import Base, engine, SessionLocal
from .ordering.brain import APOLOGY, Conversation
from .ordering.builder import BuilderFlowController
from .ordering.checkout import CheckoutFlowController
from .ordering.menu_store import CatalogReader, JsonCatalog
from .ordering.order import OrderSink, SqlOrderSink
from .ordering.replies import Reply
from .ordering.session import SessionStore, SqlSessionStore
from .whatsapp import WhatsAppSender, extract_messages

logger = logging.getLogger(__name__)


def build_conversation(
    settings: Settings,
    *,
    store: SessionStore,
    catalog: CatalogReader,
    interpreter: SelectionInterpreter,
    order_sink: OrderSink,
    sender: Any,
) -> Conversation:
    return Conversation(
        store=store,
        catalog=catalog,
        interpreter=interpreter,
        builder=BuilderFlowController(interpreter, settings),
        checkout=CheckoutFlowController(order_sink, settings),
        settings=settings,
        send=sender.send,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[SessionStore] = None,
    catalog: Optional[CatalogReader] = None,
    interpreter: Optional[SelectionInterpreter] = None,
    order_sink: Optional[OrderSink] = None,
    sender: Any = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if store is None or order_sink is None:
        Base.metadata.create_all(bind=engine)
    sender = sender or WhatsAppSender(settings)

    conversation = build_conversation(
        settings,
        store=store or SqlSessionStore(SessionLocal),
        catalog=catalog or JsonCatalog(settings.menu_path),
        interpreter=interpreter or build_interpreter(settings),
        order_sink=order_sink or SqlOrderSink(SessionLocal),
        sender=sender,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await conversation.debouncer.aclose()
        if hasattr(sender, "aclose"):
            await sender.aclose()

    app = FastAPI(
        title="Poke Builder WhatsApp Bot",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.conversation = conversation
    app.state.settings = settings

    async def _safe_send(to: str, reply: Reply) -> None:
        try:
            await sender.send(to, reply)
        except Exception:
            logger.exception("Could not deliver reply to %s", to)

    # -------------------
    # Health
    # -------------------
    @app.get("/")
    def root():
        return {"ok": True, "service": "pokebot"}

    # -------------------
    # WhatsApp webhook
    # -------------------
    @app.get("/webhooks/whatsapp", response_class=PlainTextResponse)
    def verify_webhook(
        mode: str = Query(default="", alias="hub.mode"),
        token: str = Query(default="", alias="hub.verify_token"),
        challenge: str = Query(default="", alias="hub.challenge"),
    ):
        if mode == "subscribe" and settings.whatsapp_verify_token and token == settings.whatsapp_verify_token:
            return challenge
        raise HTTPException(status_code=403, detail="Forbidden")

    @app.post("/webhooks/whatsapp", response_class=PlainTextResponse)
    async def receive_webhook(request: Request):
        try:
            body: Dict[str, Any] = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON")

        for sender_id, text in extract_messages(body):
            logger.info("Inbound message from %s", sender_id)
            try:
                await conversation.receive(sender_id, text)
            except Exception:
                logger.exception("Inbound message from %s failed", sender_id)
                await _safe_send(sender_id, APOLOGY)

        return "EVENT_RECEIVED"

    return app


app = create_app()
