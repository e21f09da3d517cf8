"""Canned message templates a buyer or seller can send by id."""

from __future__ import annotations

from haggle.domain.errors import InvalidMessageError

MESSAGE_TEMPLATES: dict[str, str] = {
    "interested": "I'm interested in this project. Can we discuss the details?",
    "lower_price": "Would you consider a lower price for this project?",
    "best_offer": "What's your best offer for this project?",
    "custom_request": "I have some specific requirements. Can we discuss customizations?",
    "timeline_question": "What's the expected timeline for this project?",
    "feature_question": "Can you provide more details about the features included?",
}


def resolve_template(template_id: str) -> str:
    """Return the canned text for *template_id*.

    Raises:
        InvalidMessageError: If the id is not in the catalogue.
    """
    try:
        return MESSAGE_TEMPLATES[template_id]
    except KeyError:
        raise InvalidMessageError(f"Unknown template '{template_id}'") from None


def list_templates() -> list[dict[str, str]]:
    """Return the catalogue as ``[{"id": ..., "content": ...}]`` in a stable order."""
    return [{"id": key, "content": value} for key, value in MESSAGE_TEMPLATES.items()]
