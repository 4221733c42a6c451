"""
Shared fixtures for the pokebot test suite.

Run with: pytest -v
"""
import json
import os

# Settings read the environment at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["LLM_ENABLED"] = "0"
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "verify-me")

import pytest

from pokebot.ai_intent import IntentResult
from pokebot.config import Settings
from pokebot.errors import OrderPersistenceError
from pokebot.ordering.builder import BuilderFlowController
from pokebot.ordering.checkout import CheckoutFlowController
from pokebot.ordering.menu import Option, Product, Step
from pokebot.ordering.menu_store import JsonCatalog
from pokebot.ordering.session import InMemorySessionStore


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeInterpreter:
    """Records calls and answers with canned ids / intents."""

    def __init__(self, ids=None, intent=None, error=None):
        self.ids = list(ids or [])
        self.intent = intent or IntentResult()
        self.error = error
        self.calls = []

    async def match_selections(self, text, options):
        self.calls.append(("match", text))
        if self.error:
            raise self.error
        return list(self.ids)

    async def classify_intent(self, text):
        self.calls.append(("intent", text))
        if self.error:
            raise self.error
        return self.intent


class RecordingSink:
    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []

    def save(self, order):
        if self.fail:
            raise OrderPersistenceError("db down")
        self.saved.append(order)
        return len(self.saved)


class RecordingSender:
    def __init__(self):
        self.sent = []

    async def send(self, to, reply):
        self.sent.append((to, reply))


def make_product():
    return Product(
        id=1,
        name="Poke Mediano",
        slug="poke-mediano",
        base_price=100,
        category="pokes",
        steps=[
            Step(
                id=1, name="base", label="Base", order=1,
                min_selections=1, max_selections=1, included_selections=1, price_per_extra=0,
                options=[Option(id=11, name="Arroz"), Option(id=12, name="Quinoa", price_extra=15)],
            ),
            Step(
                id=2, name="proteina", label="Proteína", order=2,
                min_selections=1, max_selections=2, included_selections=1, price_per_extra=40,
                options=[
                    Option(id=21, name="Atún"),
                    Option(id=22, name="Salmón", price_extra=20),
                    Option(id=23, name="Pollo"),
                ],
            ),
            Step(
                id=3, name="toppings", label="Toppings", order=3,
                min_selections=0, max_selections=None, included_selections=2, price_per_extra=10,
                options=[
                    Option(id=31, name="Pepino"),
                    Option(id=32, name="Mango"),
                    Option(id=33, name="Aguacate", price_extra=15),
                ],
            ),
        ],
    )


@pytest.fixture
def product():
    return make_product()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def settings():
    return Settings(
        llm_enabled=False,
        debounce_seconds=0.05,
        session_ttl_minutes=30,
        currency_symbol="$",
        done_enforces_minimum=False,
        whatsapp_verify_token="verify-me",
        whatsapp_phone_id="",
        whatsapp_access_token="",
    )


@pytest.fixture
def store(clock):
    return InMemorySessionStore(clock)


@pytest.fixture
def interpreter():
    return FakeInterpreter()


@pytest.fixture
def builder(interpreter, settings):
    return BuilderFlowController(interpreter, settings)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def checkout(sink, settings):
    return CheckoutFlowController(sink, settings)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def menu_file(tmp_path, product):
    data = {
        "categories": [
            {"slug": "pokes", "name": "Arma tu Poke"},
            {"slug": "bebidas", "name": "Bebidas"},
        ],
        "products": [
            product.model_dump(),
            {"id": 2, "name": "Agua de Jamaica", "slug": "agua-de-jamaica", "base_price": 35, "category": "bebidas"},
        ],
    }
    path = tmp_path / "menu.json"
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def catalog(menu_file):
    return JsonCatalog(menu_file)
