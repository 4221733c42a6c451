"""
Tests for the pricing engine.

Run with: pytest tests/test_pricing.py -v
"""
import copy

import pytest

from pokebot.config import PricingPolicy
from pokebot.ordering.menu import Option, Product, Step
from pokebot.ordering.pricing import (
    compute_total,
    extra_slot_charge,
    preview_option_price,
    remaining_included,
    remaining_picks,
    selected_ids_for,
)


@pytest.fixture
def premium_product():
    step = Step(
        id=1,
        included_selections=1,
        price_per_extra=10,
        options=[Option(id=1, name="Regular"), Option(id=2, name="Premium", price_extra=20)],
    )
    return Product(id=1, name="Bowl", slug="bowl", base_price=100, steps=[step])


@pytest.fixture
def two_step_product():
    step1 = Step(
        id=1,
        included_selections=1,
        price_per_extra=10,
        options=[Option(id=1, name="A"), Option(id=2, name="B")],
    )
    step2 = Step(id=2, included_selections=0, price_per_extra=50, options=[Option(id=3, name="C")])
    return Product(id=2, name="Two", slug="two", base_price=100, steps=[step1, step2])


class TestComputeTotal:
    def test_regular_plus_premium_pays_slot_and_premium(self, premium_product):
        assert compute_total(premium_product, {1: [1, 2]}) == 130

    def test_single_included_pick(self, premium_product):
        assert compute_total(premium_product, {1: [1]}) == 100

    def test_two_steps(self, two_step_product):
        assert compute_total(two_step_product, {1: [1, 2], 2: [3]}) == 160

    def test_premium_inside_quota_still_pays_premium(self, premium_product):
        assert compute_total(premium_product, {1: [2]}) == 120

    @pytest.mark.parametrize("selections", [None, {}, {1: []}, {99: [1]}])
    def test_base_price_when_nothing_selected(self, premium_product, selections):
        assert compute_total(premium_product, selections) == 100

    def test_included_slots_are_free(self, product):
        # toppings: 2 included, zero-extra options
        assert compute_total(product, {3: [31, 32]}) == product.base_price

    def test_adding_a_pick_never_lowers_total(self, product):
        selections = {1: [11], 2: [21], 3: [31]}
        before = compute_total(product, selections)
        for step_id, extra in [(2, 22), (3, 32), (3, 33), (1, 12)]:
            selections[step_id].append(extra)
            after = compute_total(product, selections)
            assert after >= before
            before = after

    def test_stale_ids_count_as_slots_only(self, premium_product):
        # unknown id 99 takes a slot but adds no surcharge of its own
        assert compute_total(premium_product, {1: [1, 99]}) == 110

    def test_string_keys_after_json_round_trip(self, premium_product):
        assert compute_total(premium_product, {"1": [1, 2]}) == 130

    @pytest.mark.parametrize(
        "selections",
        ["garbage", [1, 2], {1: "12"}, {1: None}, {1: [True, "x", 1.5]}],
    )
    def test_malformed_selections_degrade_to_empty(self, premium_product, selections):
        assert compute_total(premium_product, selections) == 100

    def test_does_not_mutate_inputs(self, product):
        selections = {1: [12], 2: [21, 22], 3: [31, 32, 33]}
        snapshot = copy.deepcopy(selections)
        product_snapshot = product.model_dump()
        compute_total(product, selections)
        assert selections == snapshot
        assert product.model_dump() == product_snapshot

    def test_full_bowl(self, product):
        # base 100 + quinoa 15 + (1 extra protein 40 + salmon 20) + (1 extra topping 10 + aguacate 15)
        assert compute_total(product, {1: [12], 2: [21, 22], 3: [31, 32, 33]}) == 200


class TestOrderIndexPolicy:
    def test_first_included_picks_are_free_of_both_surcharges(self, premium_product):
        assert compute_total(premium_product, {1: [2]}, PricingPolicy.ORDER_INDEX) == 100

    def test_later_picks_pay_both(self, premium_product):
        assert compute_total(premium_product, {1: [1, 2]}, PricingPolicy.ORDER_INDEX) == 130
        assert compute_total(premium_product, {1: [2, 1]}, PricingPolicy.ORDER_INDEX) == 110


class TestPreview:
    def test_unselected_option_while_slots_remain(self, premium_product):
        step = premium_product.steps[0]
        assert preview_option_price(step, step.options[1], []) == 20

    def test_unselected_option_after_quota(self, premium_product):
        step = premium_product.steps[0]
        assert preview_option_price(step, step.options[1], [1]) == 30

    def test_selected_option_uses_insertion_index(self, premium_product):
        step = premium_product.steps[0]
        regular, premium = step.options
        assert preview_option_price(step, premium, [2, 1]) == 20
        assert preview_option_price(step, regular, [2, 1]) == 10

    def test_extra_slot_charge(self, product):
        toppings = product.steps[2]
        assert extra_slot_charge(toppings, [31]) == (0, 0)
        assert extra_slot_charge(toppings, [31, 32, 33]) == (1, 10)

    def test_remaining_counters(self, product):
        proteins, toppings = product.steps[1], product.steps[2]
        assert remaining_picks(proteins, [21]) == 1
        assert remaining_picks(toppings, [31, 32, 33]) is None
        assert remaining_included(toppings, [31]) == 1
        assert remaining_included(toppings, [31, 32, 33]) == 0


def test_selected_ids_for_filters_non_ints():
    assert selected_ids_for({1: [1, "2", True, 3]}, 1) == [1, 3]
