"""Tests for tool gating and the smoke-suite trigger."""

import pytest

from skillsmith.gating import is_greeting, should_offer_tools, should_run_smoke_suite
from skillsmith.registry import BoundSkill
from skillsmith.skills import Skill


@pytest.mark.parametrize("message", [
    "Hi there",
    "hello!",
    "Hey",
    "Good morning",
    "how are you?",
    "What's up",
    "  HOWDY  ",
])
def test_greetings_never_get_tools(message):
    assert should_offer_tools(message, [{"name": "weather"}]) is False


def test_greeting_check_only_applies_to_short_messages():
    message = "Hello, could you please fetch the latest readings from the station API for me?"
    assert len(message) > 60
    assert should_offer_tools(message) is True


@pytest.mark.parametrize("message", [
    "What's the weather forecast for Paris?",
    "fetch my orders",
    "show me the latest posts",
    "call the endpoint again",
    "list all repositories",
])
def test_keywords_offer_tools(message):
    assert should_offer_tools(message) is True


def test_empty_message():
    assert should_offer_tools("") is False
    assert should_offer_tools("   ") is False


def test_casual_chat_without_skills():
    assert should_offer_tools("Tell me a joke") is False


def test_mentioning_a_skill_by_name():
    skills = [{"name": "listPets", "description": "List all pets", "apiName": "petstore"}]
    assert should_offer_tools("use listpets please", skills) is True
    assert should_offer_tools("use listpets please") is False


def test_mentioning_an_api_by_name_on_bound_skills():
    bound = [BoundSkill(skill=Skill("lookup", "Find things", "GET", "/x"), api_name="petstore")]
    assert should_offer_tools("ask petstore about rex", bound) is True


def test_is_greeting_expects_normalized_text():
    assert is_greeting("hi there") is True
    assert is_greeting("tell me a story") is False


@pytest.mark.parametrize("message, expected", [
    ("run smoke suite", True),
    ("Please RERUN smoke suite now", True),
    ("run smoke tests", True),
    ("smoke suite results?", False),
    ("", False),
])
def test_smoke_suite_trigger(message, expected):
    assert should_run_smoke_suite(message) is expected
