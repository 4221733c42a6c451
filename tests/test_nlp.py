"""
Tests for text normalization and keyword matching.

Run with: pytest tests/test_nlp.py -v
"""
import pytest

from pokebot.ordering.menu import Option
from pokebot.ordering.nlp import (
    apply_synonyms,
    classify_delivery,
    direct_matches,
    fold_text,
    is_build_request,
    is_cancel,
    is_done,
    is_greeting,
    is_menu_request,
    normalize_text,
)


@pytest.fixture
def options():
    return [
        Option(id=1, name="Arroz blanco"),
        Option(id=2, name="Salmón"),
        Option(id=3, name="Aguacate", price_extra=15),
        Option(id=4, name="Surimi", is_available=False),
        Option(id=5, name="Maíz"),
    ]


class TestNormalization:
    def test_fold_text(self):
        assert fold_text("  Menú   Principal ") == "menu principal"

    def test_normalize_strips_emoji_and_punctuation(self):
        assert normalize_text("✅ Listo!") == "listo"
        assert normalize_text("¿Salmón, atún?") == "salmon atun"

    def test_synonyms_respect_word_boundaries(self):
        assert apply_synonyms("con palta") == "con aguacate"
        assert apply_synonyms("paltas") == "paltas"


class TestKeywords:
    @pytest.mark.parametrize("text", ["listo", "LISTO", "ya está", "Eso es todo.", "✅ Listo"])
    def test_done_tokens(self, text):
        assert is_done(text)

    @pytest.mark.parametrize("text", ["listo con pollo", "no estoy listo", ""])
    def test_done_needs_whole_message(self, text):
        assert not is_done(text)

    @pytest.mark.parametrize("text", ["cancelar", "mejor CANCELAR todo", "salir", "Menú principal"])
    def test_cancel(self, text):
        assert is_cancel(text)

    def test_greeting_and_menu_are_exact(self):
        assert is_greeting("¡Hola!")
        assert not is_greeting("hola quiero un poke grande")
        assert is_menu_request("Menú")
        assert not is_menu_request("que trae el menu de hoy")

    def test_build_request(self):
        assert is_build_request("Quiero armar un poke")
        assert is_build_request("Arma tu Poke")
        assert not is_build_request("hola")

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Recoger en tienda", "pickup"),
            ("envío a domicilio porfa", "delivery"),
            ("DELIVERY", "delivery"),
            ("no sé", None),
        ],
    )
    def test_classify_delivery(self, text, expected):
        assert classify_delivery(text) == expected


class TestDirectMatches:
    def test_case_and_accent_insensitive(self, options):
        assert direct_matches("quiero SALMON", options) == [2]

    def test_catalog_order_and_dedup(self, options):
        assert direct_matches("aguacate, arroz blanco y aguacate", options) == [1, 3]

    def test_synonym_expansion(self, options):
        assert direct_matches("con palta y elote", options) == [3, 5]

    def test_unavailable_options_never_match(self, options):
        assert direct_matches("surimi", options) == []

    def test_no_match(self, options):
        assert direct_matches("xyz123", options) == []
        assert direct_matches("", options) == []
