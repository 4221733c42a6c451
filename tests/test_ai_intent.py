"""
Tests for the AI interpreter layer and the intent router.

Run with: pytest tests/test_ai_intent.py -v
"""
import asyncio
from types import SimpleNamespace

import pytest

from pokebot.ai_intent import (
    IntentResult,
    NullInterpreter,
    OpenAIInterpreter,
    build_interpreter,
    parse_intent,
    parse_option_ids,
)
from pokebot.command_router import Command, command_for_intent
from pokebot.config import Settings
from pokebot.errors import InterpreterError
from pokebot.ordering.menu import Option


@pytest.fixture
def options():
    return [Option(id=21, name="Atún"), Option(id=22, name="Salmón"), Option(id=23, name="Pollo")]


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestParsing:
    def test_option_ids_keep_only_known_ids(self, options):
        assert parse_option_ids('{"option_ids": [22, 99, 22, 21, true]}', options) == [22, 21]

    def test_bare_list_is_accepted(self, options):
        assert parse_option_ids("[23]", options) == [23]

    @pytest.mark.parametrize("raw", ["not json", '{"ids": [1]}', '"22"'])
    def test_unusable_output_raises(self, options, raw):
        with pytest.raises(InterpreterError):
            parse_option_ids(raw, options)

    def test_intent(self):
        result = parse_intent('{"intent": "START_BUILDER", "size_preference": "grande", "category_keyword": null}')
        assert result.intent == "START_BUILDER"
        assert result.size_preference == "grande"

    def test_unknown_intent_label(self):
        assert parse_intent('{"intent": "ORDER_PIZZA"}') == IntentResult()

    def test_invalid_intent_payload_raises(self):
        with pytest.raises(InterpreterError):
            parse_intent("nope")


class TestOpenAIInterpreter:
    def test_match_selections_uses_structured_output(self, options):
        completions = FakeCompletions(content='{"option_ids": [22, 404]}')
        interp = OpenAIInterpreter(Settings(openai_api_key="sk-test"), client=fake_client(completions))
        assert asyncio.run(interp.match_selections("el rosadito", options)) == [22]
        request = completions.requests[0]
        assert request["response_format"]["type"] == "json_schema"
        assert request["model"] == interp.settings.openai_model

    def test_errors_degrade_to_no_match(self, options):
        completions = FakeCompletions(error=RuntimeError("rate limited"))
        interp = OpenAIInterpreter(Settings(openai_api_key="sk-test"), client=fake_client(completions))
        assert asyncio.run(interp.match_selections("salmon", options)) == []
        assert asyncio.run(interp.classify_intent("hola")) == IntentResult()

    def test_blank_text_skips_the_model(self, options):
        completions = FakeCompletions(content="{}")
        interp = OpenAIInterpreter(Settings(openai_api_key="sk-test"), client=fake_client(completions))
        assert asyncio.run(interp.match_selections("   ", options)) == []
        assert completions.requests == []

    def test_build_interpreter_without_key(self):
        assert isinstance(build_interpreter(Settings(llm_enabled=True, openai_api_key="")), NullInterpreter)
        assert isinstance(build_interpreter(Settings(llm_enabled=False, openai_api_key="sk")), NullInterpreter)


class TestCommandRouter:
    @pytest.fixture
    def settings(self):
        return Settings(default_product_slug="poke-mediano", large_product_slug="poke-grande")

    @pytest.mark.parametrize(
        "result,expected",
        [
            (IntentResult(intent="START_BUILDER", size_preference="grande"), Command("start_builder", "poke-grande")),
            (IntentResult(intent="START_BUILDER"), Command("start_builder", "poke-mediano")),
            (IntentResult(intent="CATEGORY_FILTER", category_keyword="bebidas"),
             Command("browse_category", category_keyword="bebidas")),
            (IntentResult(intent="CATEGORY_FILTER"), Command("show_menu")),
            (IntentResult(intent="MENU_QUERY"), Command("show_menu")),
            (IntentResult(intent="INFO"), Command("show_info")),
            (IntentResult(intent="CHAT"), Command("greet")),
            (IntentResult(), Command("greet")),
        ],
    )
    def test_command_for_intent(self, settings, result, expected):
        assert command_for_intent(result, settings) == expected
