"""
System prompt for grounded answers.

The prompt carries three things besides the rules:

1. Language directive — Arabic-only when the message contains Arabic
   characters, English-only otherwise
2. Grounding — ranked properties / document chunks as readable lines
3. History — the last few prior turns, oldest first
"""

import re
from collections.abc import Sequence

from realty_chat.constants import (
    ARABIC_CHAR_PATTERN,
    ARABIC_DIRECTIVE,
    CURRENCY,
    ENGLISH_DIRECTIVE,
    NO_DATA_RESPONSE,
)
from realty_chat.models.conversation import ConversationTurn
from realty_chat.models.retrieval import DocChunkItem, PropertyItem, RetrievalItem

_ARABIC = re.compile(ARABIC_CHAR_PATTERN)

SYSTEM_PROMPT_TEMPLATE = """\
You are a helpful real estate assistant. Answer strictly from the listings, \
documents and conversation history below.

{language_directive}

{grounding_heading}:
{grounding}

Conversation History:
{history}

Rules:
- Be conversational and friendly.
- Stay on real estate. If the user drifts off topic, do not address the off-topic \
request; steer them back to real estate.
- List properties as bullet points in the same format as above, including the link.
- Honor numerical filters (bedrooms, price bounds) the user asked for.

IMPORTANT:
- If nothing above is relevant to the user's question, do not fabricate anything; \
reply exactly: "{no_data}"
- Never invent properties, prices, documents or facts that are not listed above.
- Do not use * or ** for formatting.
"""


def is_arabic(text: str) -> bool:
    """True if the text contains any Arabic-block character."""
    return bool(_ARABIC.search(text or ""))


def _fmt_number(value: float | int | None) -> str:
    if value is None:
        return "?"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.1f}"


def format_property(item: PropertyItem) -> str:
    availability = "Available" if item.available else "Not available"
    parts = [f"{item.title} ({availability}) in {item.location}"]
    if item.area_sqm is not None:
        parts.append(f"{_fmt_number(item.area_sqm)} sqm")
    if item.bedrooms is not None:
        parts.append(f"{item.bedrooms} BR")
    if item.bathrooms is not None:
        parts.append(f"{item.bathrooms} Bath")
    if item.price is not None:
        parts.append(f"{_fmt_number(item.price)} {CURRENCY}")
    line = f"- {' • '.join(parts)} | /property/{item.id}"
    if item.description:
        line += f"\n  {item.description}"
    return line


def format_chunk(item: DocChunkItem) -> str:
    return (
        f"- [document {item.document_id}, part {item.chunk_index + 1}/{item.total_chunks}]\n"
        f"  {item.content}"
    )


def format_grounding(items: Sequence[RetrievalItem]) -> str:
    """Serialize ranked grounding items as human-readable lines."""
    lines = []
    for item in items:
        if isinstance(item, PropertyItem):
            lines.append(format_property(item))
        else:
            lines.append(format_chunk(item))
    return "\n".join(lines) if lines else "(none)"


def format_history(turns: Sequence[ConversationTurn], max_turns: int) -> str:
    if max_turns <= 0 or not turns:
        return "(no previous messages)"
    return "\n\n".join(
        f"User: {turn.user_message}\nAssistant: {turn.assistant_message}"
        for turn in list(turns)[-max_turns:]
    )


def build_system_prompt(
    message: str,
    grounding: Sequence[RetrievalItem],
    history: Sequence[ConversationTurn],
    max_history_turns: int = 6,
) -> str:
    """Build the grounded system prompt for one answer."""
    has_properties = any(isinstance(item, PropertyItem) for item in grounding)
    return SYSTEM_PROMPT_TEMPLATE.format(
        language_directive=ARABIC_DIRECTIVE if is_arabic(message) else ENGLISH_DIRECTIVE,
        grounding_heading="Property Listings" if has_properties else "Relevant Documents",
        grounding=format_grounding(grounding),
        history=format_history(history, max_history_turns),
        no_data=NO_DATA_RESPONSE,
    )
