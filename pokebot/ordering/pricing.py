"""
Deterministic pricing for a configured product.

Billing (`compute_total`) and the live per-option preview shown while the
customer is still choosing (`preview_option_price`) are different
computations: billing is count based, the preview is insertion-order based.
Do not derive one from the other.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Tuple

from ..config import PricingPolicy
from .menu import Option, Product, Step

Selections = Dict[int, List[int]]


def selected_ids_for(selections: Any, step_id: int) -> List[int]:
    """Absent or malformed selections degrade to an empty list."""
    if not isinstance(selections, Mapping):
        return []
    raw = selections.get(step_id)
    if raw is None:
        # JSON round-trips turn int keys into strings
        raw = selections.get(str(step_id))
    if not isinstance(raw, (list, tuple)):
        return []
    return [x for x in raw if isinstance(x, int) and not isinstance(x, bool)]


def step_cost(step: Step, selected_ids: List[int], policy: PricingPolicy = PricingPolicy.COUNT) -> int:
    if policy is PricingPolicy.ORDER_INDEX:
        cost = 0
        for idx, opt in enumerate(step.selected_options(selected_ids)):
            if idx >= step.included_selections:
                cost += step.price_per_extra + opt.price_extra
        return cost

    extra_count = max(0, len(selected_ids) - step.included_selections)
    cost = extra_count * step.price_per_extra
    # Premium ingredients pay their premium even inside the included quota
    cost += sum(opt.price_extra for opt in step.options if opt.id in selected_ids)
    return cost


def compute_total(
    product: Product,
    selections: Selections | None,
    policy: PricingPolicy = PricingPolicy.COUNT,
) -> int:
    """
    base_price + per step:
      COUNT:       max(0, picked - included) * price_per_extra + sum(price_extra of picked)
      ORDER_INDEX: picks past the first `included` (insertion order) pay price_per_extra + price_extra

    Ids that are not options of the step add no intrinsic surcharge.
    Never raises and never mutates its inputs.
    """
    total = product.base_price
    for step in product.steps:
        total += step_cost(step, selected_ids_for(selections, step.id), policy)
    return total


# ----------------------------
# Live preview (UI only)
# ----------------------------
def preview_option_price(step: Step, option: Option, current_selections: List[int]) -> int:
    """
    Surcharge to display next to an option while the customer is on `step`.

    Not selected: what picking it now would add (own surcharge only while
    included slots remain, slot fee + own surcharge afterwards).
    Selected: its position in insertion order decides whether it is shown as
    an included pick or an extra one.
    """
    included = step.included_selections
    if option.id in current_selections:
        if current_selections.index(option.id) >= included:
            return step.price_per_extra + option.price_extra
        return option.price_extra

    if len(current_selections) < included:
        return option.price_extra
    return step.price_per_extra + option.price_extra


def extra_slot_charge(step: Step, current_selections: List[int]) -> Tuple[int, int]:
    """(number of picks beyond the included quota, slot fee they add)."""
    extra_count = max(0, len(current_selections) - step.included_selections)
    return extra_count, extra_count * step.price_per_extra


def remaining_picks(step: Step, current_selections: List[int]) -> int | None:
    """Picks still allowed on the step, None when unbounded."""
    if step.max_selections is None:
        return None
    return max(0, step.max_selections - len(current_selections))


def remaining_included(step: Step, current_selections: List[int]) -> int:
    return max(0, step.included_selections - len(current_selections))
