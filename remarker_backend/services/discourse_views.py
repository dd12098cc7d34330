"""
Presentation helpers: build transport-neutral ResponseBody values for claims,
stanzas, drafts and discourse maps. No I/O happens here.
"""

from typing import Iterable, List, Optional

from remarker_backend.models import DiscourseNode, Stance, Stanza
from remarker_backend.schemas import (
    ControlStyle,
    InteractiveControl,
    ResponseBody,
    ResponseField,
    TextInputSpec,
)

CLAIM_TITLE = "🤖 AI-Generated Claim (Editable)"
EDITED_CLAIM_TITLE = "🤖 AI-Generated Claim (Edited)"
STANZA_TITLE = "📜 Discourse Stanza"
EDITED_STANZA_TITLE = "📜 Discourse Stanza (Edited)"
DRAFTS_TITLE = "🎯 AI-Generated Claims"
MAP_TITLE = "🗺️ Discourse Map"

CLAIM_FOOTER = "Reply below to support, challenge, or question this claim."
DRAFTS_FOOTER = "Use /propose with your chosen claim to create a thread"

NO_DISCOURSE_DATA = "No discourse data found for this thread."
THREAD_ONLY = "This command only works in threads."
NO_CLAIMS_GENERATED = "Could not generate claims. Try a different topic."
UNKNOWN_INTERACTION = "Unknown interaction type."
GENERATION_FAILED = "Error generating claims. Please try again."

MAP_CONTENT_PREVIEW = 100
MAP_DESCRIPTION_LIMIT = 4000
MODAL_INPUT_LIMIT = 4000
THREAD_NAME_PREVIEW = 40

STANCE_EMOJIS = {
    Stance.SUPPORT: "✅",
    Stance.CHALLENGE: "❌",
    Stance.QUESTION: "❓",
    Stance.COMMENT: "💬",
}

NUMBER_EMOJIS = ("1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣")


def claim_controls() -> List[InteractiveControl]:
    # Buttons sit on the starter message, whose id is the root node id.
    return [
        InteractiveControl(custom_id="edit_claim", label="Edit Wording", emoji="✏️"),
        InteractiveControl(custom_id="add_response", label="Respond", emoji="💬"),
        InteractiveControl(
            custom_id="fork_claim", label="Fork Claim", emoji="🔀", style=ControlStyle.PRIMARY
        ),
        InteractiveControl(
            custom_id="delete_claim", label="Delete", emoji="❌", style=ControlStyle.DANGER
        ),
    ]


def claim_view(claim: str, edited: bool = False) -> ResponseBody:
    """Starter message for a flat claim thread."""
    return ResponseBody(
        title=EDITED_CLAIM_TITLE if edited else CLAIM_TITLE,
        description=f">>> {claim}",
        footer=CLAIM_FOOTER,
        controls=claim_controls(),
    )


def stanza_fields(stanza: Stanza) -> List[ResponseField]:
    fields = [ResponseField(name="Claim", value=stanza.claim)]
    for index, support in enumerate(stanza.supports, start=1):
        fields.append(ResponseField(name=f"Support {index}", value=support))
    fields.append(ResponseField(name="Counterpoint", value=stanza.counter))
    fields.append(ResponseField(name="Open question", value=stanza.question))
    return fields


def stanza_view(stanza: Stanza, topic: Optional[str] = None, edited: bool = False) -> ResponseBody:
    """Starter message for a stanza thread; the topic is not stored, so edits omit it."""
    return ResponseBody(
        title=EDITED_STANZA_TITLE if edited else STANZA_TITLE,
        description=f"Topic: {topic}" if topic else None,
        fields=stanza_fields(stanza),
        footer=CLAIM_FOOTER,
        controls=claim_controls(),
    )


def drafts_view(claims: List[str]) -> ResponseBody:
    lines = [f"{NUMBER_EMOJIS[index]} {claim}" for index, claim in enumerate(claims[: len(NUMBER_EMOJIS)])]
    return ResponseBody(title=DRAFTS_TITLE, description="\n\n".join(lines), footer=DRAFTS_FOOTER)


def stanza_preview_view(stanza: Stanza, topic: str) -> ResponseBody:
    return ResponseBody(
        title=STANZA_TITLE,
        description=f"Topic: {topic}",
        fields=stanza_fields(stanza),
        footer="Use /stanza to open a thread with this structure",
    )


def map_line(node: DiscourseNode) -> str:
    content = " ".join(node.content.split())
    if len(content) > MAP_CONTENT_PREVIEW:
        content = f"{content[:MAP_CONTENT_PREVIEW]}..."
    return f"**{node.stance.value.upper()}** ({node.author_tag}): {content}"


def map_view(nodes: Iterable[DiscourseNode]) -> ResponseBody:
    lines: List[str] = []
    used = 0
    for node in nodes:
        line = map_line(node)
        if used + len(line) + 2 > MAP_DESCRIPTION_LIMIT:
            lines.append("…")
            break
        lines.append(line)
        used += len(line) + 2
    return ResponseBody(title=MAP_TITLE, description="\n\n".join(lines))


def edit_modal(node: DiscourseNode) -> ResponseBody:
    return ResponseBody(
        custom_id=f"edit_modal:{node.id}",
        title="Edit Claim",
        inputs=[
            TextInputSpec(
                custom_id="new_wording",
                label="New wording:",
                paragraph=True,
                value=node.content[:MODAL_INPUT_LIMIT],
                max_length=MODAL_INPUT_LIMIT,
            )
        ],
    )


def response_modal(node: DiscourseNode) -> ResponseBody:
    return ResponseBody(
        custom_id=f"response_modal:{node.id}",
        title="Respond to Claim",
        inputs=[
            TextInputSpec(
                custom_id="stance",
                label="Stance (support, challenge, question, comment)",
                required=False,
                placeholder="comment",
                max_length=20,
            ),
            TextInputSpec(
                custom_id="content",
                label="Your response:",
                paragraph=True,
                max_length=MODAL_INPUT_LIMIT,
            ),
        ],
    )


def fork_modal(node: DiscourseNode) -> ResponseBody:
    return ResponseBody(
        custom_id=f"fork_modal:{node.id}",
        title="Fork Claim",
        inputs=[
            TextInputSpec(
                custom_id="text",
                label="Forked claim:",
                paragraph=True,
                value=node.content[:MODAL_INPUT_LIMIT],
                max_length=MODAL_INPUT_LIMIT,
            )
        ],
    )


def thread_created_text(thread_id: str) -> str:
    return f"Thread created: <#{thread_id}>"


def reply_recorded_text(stance: Stance) -> str:
    return f"{STANCE_EMOJIS.get(stance, '💬')} Response recorded as **{stance.value}**."


def deleted_view(removed_count: int) -> ResponseBody:
    noun = "node" if removed_count == 1 else "nodes"
    return ResponseBody(text=f"🗑️ Claim deleted ({removed_count} {noun} removed from the discourse graph).")


def thread_name_for(claim: str, prefix: str = "💬 Proposal: ") -> str:
    text = " ".join(claim.split())
    if len(text) > THREAD_NAME_PREVIEW:
        text = f"{text[:THREAD_NAME_PREVIEW]}..."
    return f"{prefix}{text}"
