"""Shared pytest fixtures for character card tests."""

import pytest


@pytest.fixture
def wrapped_card():
    """A typical wrapped (chara_card_v2) payload."""
    return {
        "spec": "chara_card_v2",
        "spec_version": "2.0",
        "data": {
            "name": "Seraphina",
            "description": "Seraphina is a 27 years old elf healer who guards the forest.",
            "personality": "Gentle, protective",
            "scenario": "You wake up in her glade.",
            "first_mes": "*She smiles.* You're awake.",
            "mes_example": "<START>\n{{char}}: Rest now.",
            "creator_notes": "Best with long replies.",
            "system_prompt": "Stay in character.",
            "post_history_instructions": "Keep it gentle.",
            "alternate_greetings": ["Hello again.", "Welcome back."],
            "tags": ["fantasy", "elf"],
            "creator": "example",
            "character_version": "1.2",
            "avatar": "https://example.com/embedded-avatar.png",
            "extensions": {"talkativeness": "0.5"},
        },
    }
