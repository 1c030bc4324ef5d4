"""Flatten learning card content into searchable text."""

from ..models.generation import LearningCard


def combine_card_text(card: LearningCard, include_sources: bool = False) -> str:
    """Concatenate every learner-visible piece of text on a card."""
    blocks = []
    for block in card.content_blocks:
        if block.type in ("text", "callout"):
            blocks.append(block.text)
        else:
            blocks.append(" ".join(block.items))

    interactions = [
        " ".join([interaction.question, " ".join(interaction.options), interaction.explanation])
        for interaction in card.interactions
    ]
    slot_guidance = [f"{item.slot} {item.rule}" for item in card.slot_language.guidance]

    parts = [
        card.title,
        " ".join(blocks),
        " ".join(interactions),
        " ".join(slot_guidance),
        " ".join(card.safety_netting),
    ]
    if include_sources:
        parts.append(
            " ".join(f"{source.title} {source.url or ''}" for source in card.sources)
        )
    return " ".join(parts)
