from __future__ import annotations

import logging
from typing import Tuple

from ..config import Settings
from ..errors import OrderPersistenceError, SessionInvariantError
from .menu import Product
from .nlp import classify_delivery, is_cancel, is_confirm
from .order import DELIVERY_LABELS, OrderSink, build_descriptor, build_summary
from .pricing import compute_total
from .replies import ButtonsReply, Reply, TextReply
from .session import CheckoutStep, SessionMode, SessionState

logger = logging.getLogger(__name__)

DELIVERY_BUTTONS = (DELIVERY_LABELS["pickup"], DELIVERY_LABELS["delivery"])
CONFIRM_BUTTONS = ("✅ Confirmar Orden", "❌ Cancelar")
AFTER_ORDER_BUTTONS = ("Menú Principal",)


class CheckoutFlowController:
    """COLLECT_NAME -> COLLECT_DELIVERY -> SHOW_SUMMARY -> confirmed | cancelled"""

    def __init__(self, order_sink: OrderSink, settings: Settings) -> None:
        self.order_sink = order_sink
        self.settings = settings

    def _money(self, amount: int) -> str:
        return f"{self.settings.currency_symbol}{amount}"

    def advance(self, session: SessionState, product: Product, user_id: str, text: str) -> Tuple[SessionState, Reply]:
        checkout = session.checkout
        if session.mode is not SessionMode.CHECKOUT or checkout is None:
            raise SessionInvariantError("advance() called without a checkout session", user_id)

        text = (text or "").strip()
        step = checkout.checkout_step

        if step is CheckoutStep.COLLECT_NAME:
            if len(text) < 2:
                return session, TextReply(text="⚠️ Por favor escribe un nombre válido (mínimo 2 caracteres).")
            updated = checkout.model_copy(
                update={"customer_name": text, "checkout_step": CheckoutStep.COLLECT_DELIVERY}
            )
            return (
                session.model_copy(update={"checkout": updated}, deep=True),
                ButtonsReply(text=f"✅ Perfecto, *{text}*!\n\n📍 ¿Cómo lo quieres recibir?", buttons=DELIVERY_BUTTONS),
            )

        if step is CheckoutStep.COLLECT_DELIVERY:
            method = classify_delivery(text)
            if method is None:
                return session, ButtonsReply(text="⚠️ Por favor elige una opción válida:", buttons=DELIVERY_BUTTONS)

            total = compute_total(product, checkout.selections, self.settings.pricing_policy)
            if total != checkout.total_price:
                logger.info("Total for %s changed since builder: %s -> %s", user_id, checkout.total_price, total)
            updated = checkout.model_copy(
                update={
                    "delivery_method": method,
                    "total_price": total,
                    "checkout_step": CheckoutStep.SHOW_SUMMARY,
                }
            )
            summary = build_summary(product, checkout.selections, self.settings.currency_symbol)
            return (
                session.model_copy(update={"checkout": updated}, deep=True),
                ButtonsReply(
                    text=(
                        f"📋 *RESUMEN DE TU ORDEN*\n\n{summary}\n\n------------------\n"
                        f"👤 *Nombre:* {checkout.customer_name}\n"
                        f"📍 *Entrega:* {DELIVERY_LABELS[method]}\n"
                        f"💰 *TOTAL: {self._money(total)}*\n------------------\n\n¿Todo correcto?"
                    ),
                    buttons=CONFIRM_BUTTONS,
                ),
            )

        # SHOW_SUMMARY
        if is_cancel(text):
            logger.info("Checkout cancelled for %s", user_id)
            return session.reset_flow(), ButtonsReply(
                text="❌ Orden cancelada. ¿Quieres empezar de nuevo?",
                buttons=("Armar un Poke", "Ver Menú"),
            )

        if not is_confirm(text):
            return session, ButtonsReply(text="⚠️ Por favor confirma o cancela tu orden:", buttons=CONFIRM_BUTTONS)

        descriptor = build_descriptor(
            phone=user_id,
            customer_name=checkout.customer_name or "",
            delivery_method=checkout.delivery_method or "pickup",
            product=product,
            selections=checkout.selections,
            total=checkout.total_price,
            currency_symbol=self.settings.currency_symbol,
        )
        try:
            order_id = self.order_sink.save(descriptor)
        except OrderPersistenceError:
            logger.exception("Order sink failed for %s", user_id)
            return session, ButtonsReply(
                text="⚠️ Hubo un error al procesar tu orden. Por favor intenta de nuevo.",
                buttons=CONFIRM_BUTTONS,
            )

        logger.info("Order #%s confirmed for %s", order_id, user_id)
        return session.reset_flow(), ButtonsReply(
            text=(
                "🎉 *¡ORDEN CONFIRMADA!* 🎉\n\n"
                f"🧾 Orden #{order_id} en preparación. Nuestra cocina ya comenzó a prepararla.\n\n"
                f"¡Gracias por tu preferencia, {descriptor.customer_name}! 🥢✨"
            ),
            buttons=AFTER_ORDER_BUTTONS,
        )
