"""
Step-by-step product builder.

One call to `BuilderFlowController.advance` consumes one (aggregated) user
turn and returns the next session state plus the reply to send. The
controller never touches the session store; the caller persists the result.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

from ..ai_intent import SelectionInterpreter
from ..config import Settings
from ..errors import SessionInvariantError
from .menu import Product, Step
from .nlp import direct_matches, is_cancel, is_done
from .order import build_summary
from .pricing import compute_total, extra_slot_charge, preview_option_price, remaining_included, remaining_picks
from .replies import ButtonsReply, Reply, TextReply
from .session import BuilderState, CheckoutState, SessionMode, SessionState

logger = logging.getLogger(__name__)

DONE_BUTTON = "✅ Listo"
MAIN_MENU_BUTTONS = ["Menú", "Armar un Poke"]


def _limit_phrase(step: Step) -> str:
    if step.max_selections == 1:
        return "elige 1"
    if step.max_selections:
        return f"elige hasta {step.max_selections}"
    return "elige las que quieras"


def _names(step: Step, ids: List[int]) -> List[str]:
    return [o.name for o in step.selected_options(ids)]


class BuilderFlowController:
    def __init__(self, interpreter: SelectionInterpreter, settings: Settings) -> None:
        self.interpreter = interpreter
        self.settings = settings

    # ----------------------------
    # Rendering helpers
    # ----------------------------
    def _money(self, amount: int) -> str:
        return f"{self.settings.currency_symbol}{amount}"

    def _options_block(self, step: Step, current: List[int]) -> str:
        lines = []
        for opt in step.options:
            price = preview_option_price(step, opt, current)
            suffix = f" (+{self._money(price)})" if price > 0 else ""
            check = "✅ " if opt.id in current else "• "
            lines.append(f"{check}{opt.name}{suffix}")
        return "\n".join(lines)

    def _step_reply(self, step: Step, text: str) -> Reply:
        if step.is_single_select:
            return TextReply(text=text)
        return ButtonsReply(text=text, buttons=(DONE_BUTTON,))

    def _stay_reply(self, step: Step, current: List[int], refused: List[str]) -> Reply:
        parts: List[str] = []
        picked = _names(step, current)
        if picked:
            parts.append(f"✅ Llevas: {', '.join(picked)}.")
        else:
            parts.append(f"Aún no eliges nada para *{step.title}*.")

        if refused:
            parts.append(
                f"⚠️ Solo puedes elegir máximo {step.max_selections} en {step.title}; "
                f"no agregué: {', '.join(refused)}."
            )

        left = remaining_picks(step, current)
        free_left = remaining_included(step, current)
        if left is None:
            room = "Puedes agregar las que quieras."
        elif left == 0:
            room = "Ya llegaste al máximo de este paso."
        else:
            room = f"Puedes elegir {left} más."
        if free_left:
            room += f" Te quedan {free_left} incluida(s)."
        parts.append(room)

        extras, amount = extra_slot_charge(step, current)
        if amount > 0:
            parts.append(f"💰 *Ojo*: Llevas {extras} extra(s). Se sumarán +{self._money(amount)}.")

        text = (
            "\n".join(parts)
            + f'\n\n*Elige para "{step.title}":* (Incluye: {step.included_selections})\n'
            + self._options_block(step, current)
            + '\n\nEscribe tu elección o "Listo" para continuar. 👇'
        )
        return self._step_reply(step, text)

    def _clarify_reply(self, step: Step, current: List[int], text: str) -> Reply:
        picked = _names(step, current)
        selected = f"✅ *Seleccionado*: {', '.join(picked)}\n\n" if picked else ""
        body = (
            f'🤔 Hmm, no encontré "{text}" en las opciones disponibles.\n\n'
            f"{selected}"
            f'*Opciones para "{step.title}":*\n'
            f"{self._options_block(step, current)}\n\n"
            'Escribe el nombre de lo que quieres o "Listo" para continuar. 👇'
        )
        return self._step_reply(step, body)

    def _intro_reply(self, step: Step, lead: str) -> Reply:
        body = (
            f"{lead}*{step.title}* ({_limit_phrase(step)})\n\n"
            f"*Opciones de {step.title}:* (Incluye: {step.included_selections})\n"
            f"{self._options_block(step, [])}\n\n"
            "Escribe tu elección 👇"
        )
        return self._step_reply(step, body)

    # ----------------------------
    # Transitions
    # ----------------------------
    def start(self, session: SessionState, product: Product) -> Tuple[SessionState, Reply]:
        """Open a builder session for `product` at its first step."""
        builder = BuilderState(product_slug=product.slug, step_index=0, selections={})
        started = session.model_copy(
            update={"mode": SessionMode.BUILDER, "builder": builder, "checkout": None},
            deep=True,
        )
        logger.info("Builder started for %s", product.slug)
        if not product.steps:
            return self._finish(started, product, builder)

        lead = f"¡Excelente! Vamos a armar tu *{product.name}* 🥣.\n\nPrimero: "
        return started, self._intro_reply(product.steps[0], lead)

    def _finish(self, session: SessionState, product: Product, builder: BuilderState) -> Tuple[SessionState, Reply]:
        # Only ids still offered by their step are frozen and billed
        selections = {}
        for step in product.steps:
            valid = {o.id for o in step.options}
            picked = [i for i in builder.selections.get(step.id, []) if i in valid]
            if picked:
                selections[step.id] = picked
        total = compute_total(product, selections, self.settings.pricing_policy)
        checkout = CheckoutState(product_slug=product.slug, selections=selections, total_price=total)
        done = session.model_copy(
            update={"mode": SessionMode.CHECKOUT, "builder": None, "checkout": checkout},
            deep=True,
        )
        logger.info("Builder complete for %s, total %s", product.slug, total)

        summary = build_summary(product, selections, self.settings.currency_symbol)
        return done, TextReply(
            text=(
                f"🎉 ¡Excelente! Tu *{product.name}* está casi listo.\n\n"
                f"{summary}\n\n💰 *Total: {self._money(total)}*\n\n"
                "Antes de enviarlo a cocina, necesito algunos datos:\n\n"
                "👤 *¿Cuál es tu nombre?*"
            )
        )

    async def _interpret(self, text: str, step: Step) -> List[int]:
        if not text:
            return []
        try:
            ids = await self.interpreter.match_selections(text, step.options)
        except Exception:
            logger.warning("Interpreter failed on step %s; treating as no match", step.id, exc_info=True)
            return []
        valid = {o.id for o in step.options}
        return [i for i in ids or [] if i in valid]

    async def advance(self, session: SessionState, product: Product, text: str) -> Tuple[SessionState, Reply]:
        text = (text or "").strip()

        # 1) exit wins over everything
        if is_cancel(text):
            logger.info("Builder cancelled")
            return session.reset_flow(), ButtonsReply(
                text="Entendido, pedido cancelado. Volviendo al menú principal.",
                buttons=tuple(MAIN_MENU_BUTTONS),
            )

        builder = session.builder
        if session.mode is not SessionMode.BUILDER or builder is None:
            raise SessionInvariantError("advance() called without a builder session")

        steps = product.steps
        idx = builder.step_index
        if idx < 0 or idx > len(steps):
            raise SessionInvariantError(f"step_index {idx} out of range for {product.slug} ({len(steps)} steps)")
        if idx == len(steps):
            return self._finish(session, product, builder)

        step = steps[idx]
        valid = {o.id for o in step.options}
        # Options removed from the catalog since they were picked drop out here
        current = [i for i in builder.selections.get(step.id, []) if i in valid]
        refused: List[str] = []

        # 2) explicit "done" skips interpretation
        explicit_done = is_done(text)
        if explicit_done:
            if self.settings.done_enforces_minimum and len(current) < step.min_selections:
                return session, TextReply(
                    text=(
                        f"⚠️ Aún nos falta un poco. Mínimo necesitas elegir {step.min_selections} "
                        f"opción(es). Llevas: {len(current)}.\n\nEscribe *qué ingredientes* quieres."
                    )
                )
        else:
            # 3) direct match first, then the interpreter, deduplicated
            matched = direct_matches(text, step.options)
            for oid in await self._interpret(text, step):
                if oid not in matched:
                    matched.append(oid)

            if matched:
                if step.is_single_select:
                    current = [matched[-1]]
                else:
                    for oid in matched:
                        if oid in current:
                            current.remove(oid)
                        elif step.max_selections is not None and len(current) >= step.max_selections:
                            opt = step.option_by_id(oid)
                            refused.append(opt.name if opt else str(oid))
                        else:
                            current.append(oid)
            elif text:
                return session, self._clarify_reply(step, current, text)

        updated = builder.model_copy(deep=True)
        updated.selections[step.id] = current
        new_session = session.model_copy(update={"builder": updated}, deep=True)

        # 4) advance?
        should_advance = explicit_done or (step.is_single_select and bool(current))
        if not should_advance:
            return new_session, self._stay_reply(step, current, refused)

        if idx + 1 < len(steps):
            updated.step_index = idx + 1
            new_session = session.model_copy(update={"builder": updated}, deep=True)
            picked = _names(step, current)
            lead = f"✅ ¡Listo! {', '.join(picked)}.\n\n" if picked else "✅ ¡Listo!\n\n"
            return new_session, self._intro_reply(steps[idx + 1], lead + "Ahora vamos con: ")

        return self._finish(new_session, product, updated)
