"""Pytest configuration and fixtures."""

import copy
import os

import pytest

# Set environment variables for testing
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["POWERTOOLS_SERVICE_NAME"] = "dailydose-test"
os.environ["ADMIN_TOOLKIT_BASE_URL"] = "https://app.signpostingtool.co.uk/toolkit"
os.environ.pop("DAILY_DOSE_CARD_CORRECT_THRESHOLD", None)


VALID_CARD = {
    "targetRole": "GP",
    "title": "Safety netting for sore throat",
    "estimatedTimeMinutes": 5,
    "tags": ["ent"],
    "riskLevel": "LOW",
    "needsSourcing": False,
    "reviewByDate": "2027-06-01",
    "sources": [
        {
            "title": "NHS",
            "url": "https://www.nhs.uk/conditions/sore-throat/",
            "publisher": "NHS",
        }
    ],
    "contentBlocks": [
        {"type": "text", "text": "Most sore throats settle within a week."},
        {"type": "steps", "items": ["Check duration", "Check fever"]},
    ],
    "interactions": [
        {
            "type": "mcq",
            "question": "How long do most sore throats last?",
            "options": ["About a week", "About a month"],
            "correctIndex": 0,
            "explanation": "Most settle within a week.",
        }
    ],
    "slotLanguage": {"relevant": False, "guidance": []},
    "safetyNetting": ["Seek help if symptoms last more than a week."],
}

VALID_QUIZ = {
    "title": "Quick check",
    "questions": [
        {
            "type": "true_false",
            "question": "Most sore throats need antibiotics.",
            "options": ["True", "False"],
            "correctIndex": 1,
            "explanation": "Most are viral.",
        }
    ],
}

ADMIN_CARD = {
    "targetRole": "ADMIN",
    "title": "Admin escalation basics",
    "estimatedTimeMinutes": 5,
    "tags": ["mental health"],
    "riskLevel": "HIGH",
    "needsSourcing": False,
    "reviewByDate": "2027-02-01",
    "sources": [
        {
            "title": "Signposting Toolkit (internal)",
            "url": "https://app.signpostingtool.co.uk/toolkit/mental-health-crisis",
            "publisher": "Signposting Toolkit",
        }
    ],
    "contentBlocks": [{"type": "text", "text": "Use the toolkit script and pass the call on."}],
    "interactions": [
        {
            "type": "mcq",
            "question": "What should you do next?",
            "options": ["Escalate to duty GP", "Offer counselling"],
            "correctIndex": 0,
            "explanation": "Escalate to the duty GP.",
        }
    ],
    "slotLanguage": {
        "relevant": True,
        "guidance": [{"slot": "Red", "rule": "Call 999 for immediate danger."}],
    },
    "safetyNetting": ["Call 999 if danger is immediate."],
}


@pytest.fixture
def valid_card():
    """A card dict that passes schema validation."""
    return copy.deepcopy(VALID_CARD)


@pytest.fixture
def admin_card():
    """An admin card dict that passes the admin content rules."""
    return copy.deepcopy(ADMIN_CARD)


@pytest.fixture
def valid_payload():
    """A complete generation payload that passes schema validation."""
    return {"cards": [copy.deepcopy(VALID_CARD)], "quiz": copy.deepcopy(VALID_QUIZ)}


@pytest.fixture
def admin_payload():
    """A complete admin generation payload that passes every check."""
    return {"cards": [copy.deepcopy(ADMIN_CARD)], "quiz": copy.deepcopy(VALID_QUIZ)}
