# pokebot/ordering/brain.py
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from ..ai_intent import IntentResult, SelectionInterpreter
from ..command_router import command_for_intent
from ..config import Settings
from ..errors import SessionInvariantError, SessionStoreError
from .builder import MAIN_MENU_BUTTONS, BuilderFlowController
from .checkout import CheckoutFlowController
from .debounce import MessageDebouncer
from .menu import Category, Product
from .menu_store import CatalogReader
from .nlp import fold_text, is_build_request, is_greeting, is_menu_request
from .replies import ButtonsReply, ListReply, ListRow, Reply, TextReply
from .session import SessionMode, SessionState, SessionStore

logger = logging.getLogger(__name__)

Sender = Callable[[str, Reply], Awaitable[None]]

APOLOGY = TextReply(text="Lo siento, algo salió mal 🙏. Empecemos de nuevo: escribe *Menú* para ver las opciones.")
RETRY_REPLY = TextReply(text="⚠️ Tuvimos un problema guardando tu pedido. Por favor envía tu mensaje de nuevo.")
UNAVAILABLE_REPLY = ButtonsReply(
    text="El producto ya no está disponible. Volvamos al inicio.",
    buttons=tuple(MAIN_MENU_BUTTONS),
)


class Conversation:
    """
    Per-turn router around the builder and checkout controllers.

    - receive(): every inbound message. Answers fast-path keywords right away
      (never while building), otherwise buffers through the debouncer.
    - handle_turn(): one aggregated turn; read -> route -> write.
    Turns of one user never overlap; different users run concurrently.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        catalog: CatalogReader,
        interpreter: SelectionInterpreter,
        builder: BuilderFlowController,
        checkout: CheckoutFlowController,
        settings: Settings,
        send: Sender,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.interpreter = interpreter
        self.builder = builder
        self.checkout = checkout
        self.settings = settings
        self.send = send
        self.clock = clock
        self.debouncer = MessageDebouncer(store, self._on_flush, settings.debounce_seconds, clock)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    # -------------------
    # Entry points
    # -------------------
    async def receive(self, user_id: str, text: str) -> Optional[Reply]:
        """Returns the reply when it was answered on the fast path, None when buffered."""
        text = (text or "").strip()
        if not text:
            return None

        async with self._user_lock(user_id):
            now = self.clock()
            session = self._expire_if_stale(user_id, self.store.get(user_id), now)

            if session.mode is not SessionMode.BUILDER:
                reply = self._instant_reply(text)
                if reply is not None:
                    logger.info("Fast path for %s", user_id)
                    session.pending_messages = []
                    session.buffer_until = 0.0
                    session.last_interaction = now
                    self.store.put(user_id, session)
                    await self.send(user_id, reply)
                    return reply

        await self.debouncer.submit(user_id, text)
        return None

    async def handle_turn(self, user_id: str, text: str) -> Reply:
        async with self._user_lock(user_id):
            now = self.clock()
            session = self._expire_if_stale(user_id, self.store.get(user_id), now)
            session.last_interaction = now

            try:
                new_session, reply = await self._route(user_id, session, text)
            except SessionInvariantError:
                logger.exception("Corrupted session for %s; resetting", user_id)
                self._reset_quietly(user_id)
                raise

            if not self._persist(user_id, new_session):
                return RETRY_REPLY
            return reply

    async def _on_flush(self, user_id: str, aggregated: str) -> None:
        try:
            reply = await self.handle_turn(user_id, aggregated)
        except Exception:
            logger.exception("Turn failed for %s", user_id)
            reply = APOLOGY
        await self.send(user_id, reply)

    # -------------------
    # Session helpers
    # -------------------
    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Per-user lock, dropped again once nobody holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._locks[user_id]

    def _expire_if_stale(self, user_id: str, session: SessionState, now: float) -> SessionState:
        if session.is_stale(now, self.settings.session_ttl_seconds):
            logger.info("Session for %s expired (%s)", user_id, session.mode.value)
            session = session.reset_flow()
            session.last_interaction = now
            self.store.put(user_id, session)
        return session

    def _persist(self, user_id: str, session: SessionState) -> bool:
        """
        Write with one retry. The debounce buffer is taken from the stored
        record so messages buffered during this turn are not lost.
        """
        for attempt in (1, 2):
            try:
                latest = self.store.get(user_id)
                session.pending_messages = list(latest.pending_messages)
                session.buffer_until = latest.buffer_until
                self.store.put(user_id, session)
                return True
            except SessionStoreError:
                logger.warning("Session write failed for %s (attempt %d)", user_id, attempt, exc_info=True)
        return False

    def _reset_quietly(self, user_id: str) -> None:
        try:
            self.store.clear(user_id)
        except SessionStoreError:
            logger.exception("Could not clear session for %s", user_id)

    # -------------------
    # Routing
    # -------------------
    async def _route(self, user_id: str, session: SessionState, text: str) -> Tuple[SessionState, Reply]:
        if session.mode is SessionMode.BUILDER:
            if session.builder is None:
                raise SessionInvariantError("BUILDER mode without builder state", user_id)
            product = self.catalog.get_product_by_slug(session.builder.product_slug)
            if product is None:
                return session.reset_flow(), UNAVAILABLE_REPLY
            return await self.builder.advance(session, product, text)

        if session.mode is SessionMode.CHECKOUT:
            if session.checkout is None:
                raise SessionInvariantError("CHECKOUT mode without checkout state", user_id)
            product = self.catalog.get_product_by_slug(session.checkout.product_slug)
            if product is None:
                return session.reset_flow(), UNAVAILABLE_REPLY
            return self.checkout.advance(session, product, user_id, text)

        return await self._normal(session, text)

    async def _normal(self, session: SessionState, text: str) -> Tuple[SessionState, Reply]:
        product = self._mentioned_product(text)
        if product is not None:
            return self.builder.start(session, product)

        if is_build_request(text):
            return session, self._size_reply()

        category = self._mentioned_category(text)
        if category is not None:
            return session, self._category_reply(category.name)

        result = await self._classify(text)
        cmd = command_for_intent(result, self.settings)
        logger.info("Intent %s -> %s", result.intent, cmd.action)

        if cmd.action == "start_builder" and cmd.product_slug:
            product = self.catalog.get_product_by_slug(cmd.product_slug)
            if product is None:
                return session, TextReply(text="Lo siento, tuve un problema accediendo al menú. Intenta más tarde.")
            return self.builder.start(session, product)

        if cmd.action == "browse_category" and cmd.category_keyword:
            return session, self._category_reply(cmd.category_keyword)

        if cmd.action == "show_menu":
            return session, self._menu_reply()

        if cmd.action == "show_info":
            return session, self._info_reply()

        return session, self._greeting_reply()

    async def _classify(self, text: str) -> IntentResult:
        try:
            return await self.interpreter.classify_intent(text)
        except Exception:
            logger.warning("Intent classification failed", exc_info=True)
            return IntentResult()

    def _mentioned_product(self, text: str) -> Optional[Product]:
        """Longest product name contained in the text wins ("poke grande" over "poke")."""
        t = fold_text(text)
        slug = text.strip().lower()
        for p in self.catalog.list_products():
            if p.slug == slug:
                return self.catalog.get_product_by_slug(p.slug)

        best: Optional[Product] = None
        best_len = 0
        for p in self.catalog.list_products():
            name = fold_text(p.name)
            if name and name in t and len(name) > best_len:
                best, best_len = p, len(name)
        if best is None:
            return None
        # list_products() is a summary view; re-read to get the canonical tree
        return self.catalog.get_product_by_slug(best.slug)

    def _mentioned_category(self, text: str) -> Optional[Category]:
        t = fold_text(text)
        for c in self.catalog.list_categories():
            if fold_text(c.name) in t or fold_text(c.slug) in t.split():
                return c
        return None

    # -------------------
    # Canned replies
    # -------------------
    def _instant_reply(self, text: str) -> Optional[Reply]:
        if is_greeting(text):
            return self._greeting_reply()
        if is_menu_request(text):
            return self._menu_reply()
        return None

    def _greeting_reply(self) -> Reply:
        return ButtonsReply(
            text=(
                f"¡Hola! Bienvenido a *{self.settings.business_name}* 🥣.\n\n"
                "Soy tu asistente virtual. ¿Qué se te antoja hoy?"
            ),
            buttons=("Menú", "Armar un Poke"),
        )

    def _menu_reply(self) -> Reply:
        categories = self.catalog.list_categories()
        if not categories:
            return self._greeting_reply()
        cat_list = "\n".join(f"• {c.name}" for c in categories)
        return ButtonsReply(
            text=f"📜 *Categorías del Menú:*\n\n{cat_list}\n\nEscribe una categoría o arma tu poke:",
            buttons=("Armar un Poke",) + tuple(c.name for c in categories[:2]),
        )

    def _size_reply(self) -> Reply:
        buildable = [p for p in self.catalog.list_products() if p.is_customizable]
        if not buildable:
            return self._menu_reply()
        return ButtonsReply(
            text="¿De qué tamaño armamos tu Poke? 🥣",
            buttons=tuple(p.name for p in buildable[:3]),
        )

    def _category_reply(self, keyword: str) -> Reply:
        category = self.catalog.find_category(keyword)
        if category is None:
            return self._menu_reply()
        products = self.catalog.list_products_by_category(category.slug)
        if not products:
            return TextReply(text=f"Por ahora no tenemos productos en *{category.name}*. Escribe *Menú* para ver todo.")
        cur = self.settings.currency_symbol
        return ListReply(
            text=f"📂 *{category.name}:*\n\n¿Te sirvo algo de aquí?",
            button="Ver productos",
            rows=tuple(
                ListRow(id=p.slug, title=p.name, description=f"{cur}{p.base_price}")
                for p in products
            ),
        )

    def _info_reply(self) -> Reply:
        lines = [f"🕒 *Horario:* {self.settings.business_hours}"]
        if self.settings.business_location:
            lines.append(f"📍 *Ubicación:* {self.settings.business_location}")
        return ButtonsReply(text="\n".join(lines), buttons=("Menú", "Armar un Poke"))
