from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..errors import OrderPersistenceError
from ..models import Order
from .menu import Product
from .pricing import Selections, selected_ids_for

logger = logging.getLogger(__name__)

DELIVERY_LABELS = {
    "pickup": "🏪 Recoger en tienda",
    "delivery": "🚗 Envío a domicilio",
}


@dataclass(frozen=True)
class OrderLine:
    step_label: str
    options: Tuple[str, ...]


@dataclass(frozen=True)
class OrderDescriptor:
    phone: str
    customer_name: str
    delivery_method: str
    product_slug: str
    product_name: str
    total: int
    lines: Tuple[OrderLine, ...]
    summary_text: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def items(self) -> List[Dict[str, Any]]:
        return [
            {
                "product": self.product_name,
                "slug": self.product_slug,
                "selections": {ln.step_label: list(ln.options) for ln in self.lines},
                "total": self.total,
            }
        ]


def order_lines(product: Product, selections: Selections) -> Tuple[OrderLine, ...]:
    """Selected option names per step, steps in product order; empty steps skipped."""
    lines: List[OrderLine] = []
    for step in product.steps:
        picked = step.selected_options(selected_ids_for(selections, step.id))
        if picked:
            lines.append(OrderLine(step_label=step.title, options=tuple(o.name for o in picked)))
    return tuple(lines)


def build_summary(product: Product, selections: Selections, currency_symbol: str = "$") -> str:
    out = [f"*{product.name}* ({currency_symbol}{product.base_price})"]
    for ln in order_lines(product, selections):
        out.append(f"\n*{ln.step_label}:*")
        out.extend(f"• {name}" for name in ln.options)
    return "\n".join(out)


def build_descriptor(
    *,
    phone: str,
    customer_name: str,
    delivery_method: str,
    product: Product,
    selections: Selections,
    total: int,
    currency_symbol: str = "$",
) -> OrderDescriptor:
    return OrderDescriptor(
        phone=phone,
        customer_name=customer_name,
        delivery_method=delivery_method,
        product_slug=product.slug,
        product_name=product.name,
        total=total,
        lines=order_lines(product, selections),
        summary_text=build_summary(product, selections, currency_symbol),
    )


# -------------------
# Sinks
# -------------------
class OrderSink(Protocol):
    def save(self, order: OrderDescriptor) -> int: ...


class SqlOrderSink:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def save(self, order: OrderDescriptor) -> int:
        db = self._session_factory()
        try:
            row = Order(
                phone=order.phone,
                customer_name=order.customer_name,
                delivery_method=order.delivery_method,
                product_slug=order.product_slug,
                total=order.total,
                status="pending",
                payment_status="pending",
                created_at=order.created_at.replace(tzinfo=None),
                summary_text=order.summary_text,
                items_json=json.dumps(order.items(), ensure_ascii=False),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("Order #%s saved for %s (total %s)", row.id, order.phone, order.total)
            return int(row.id)
        except SQLAlchemyError as e:
            db.rollback()
            raise OrderPersistenceError("Could not save order") from e
        finally:
            db.close()
