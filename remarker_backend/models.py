"""
Domain types for the discourse graph.

DiscourseNode records are owned by the graph store; everything outside the
store only ever sees copies.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Stance(str, Enum):
    CLAIM = "claim"
    SUPPORT = "support"
    CHALLENGE = "challenge"
    QUESTION = "question"
    COMMENT = "comment"


# Labels the classifier is allowed to produce.
CLASSIFIER_STANCES = (Stance.SUPPORT, Stance.CHALLENGE, Stance.QUESTION)

# Labels a reply node may carry.
REPLY_STANCES = (Stance.SUPPORT, Stance.CHALLENGE, Stance.QUESTION, Stance.COMMENT)


class NodeKind(str, Enum):
    FLAT = "flat"
    STANZA = "stanza"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DiscourseNode:
    """A single utterance in a thread's discourse graph."""

    id: str
    thread_id: str
    author_tag: str
    content: str
    stance: Stance
    kind: NodeKind = NodeKind.FLAT
    parent_id: Optional[str] = None
    child_ids: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)
    forked_from: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def copy(self) -> "DiscourseNode":
        return replace(self, child_ids=list(self.child_ids))

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "thread_id": self.thread_id,
            "author_tag": self.author_tag,
            "content": self.content,
            "stance": self.stance.value,
            "child_ids": list(self.child_ids),
            "kind": self.kind.value,
            "created_at": self.created_at,
            "forked_from": self.forked_from,
        }

    @classmethod
    def from_record(cls, node_id: str, record: Dict[str, Any]) -> "DiscourseNode":
        """
        Build a node from a snapshot record.

        Accepts both the current snake_case shape and the legacy camelCase
        shape (``parent``, ``authorTag``, ``children``, ``threadId``) found in
        flat legacy snapshots.
        """
        parent_id = record.get("parent_id", record.get("parent"))
        stance_value = str(record.get("stance") or "").strip().lower()
        try:
            stance = Stance(stance_value)
        except ValueError:
            stance = Stance.CLAIM if parent_id is None else Stance.COMMENT

        kind_value = str(record.get("kind") or NodeKind.FLAT.value).strip().lower()
        try:
            kind = NodeKind(kind_value)
        except ValueError:
            kind = NodeKind.FLAT

        return cls(
            id=str(record.get("id") or node_id),
            parent_id=str(parent_id) if parent_id is not None else None,
            thread_id=str(record.get("thread_id", record.get("threadId", ""))),
            author_tag=str(record.get("author_tag", record.get("authorTag", "unknown"))),
            content=str(record.get("content", "")),
            stance=stance,
            child_ids=[str(cid) for cid in record.get("child_ids", record.get("children", [])) or []],
            kind=kind,
            created_at=str(record.get("created_at") or utc_now_iso()),
            forked_from=record.get("forked_from"),
        )


@dataclass
class Stanza:
    """Structured argumentative unit: a claim, its supports, a counter and an open question."""

    claim: str
    supports: List[str]
    counter: str
    question: str

    def render(self) -> str:
        lines = [f"CLAIM: {self.claim}"]
        for index, support in enumerate(self.supports, start=1):
            lines.append(f"SUPPORT {index}: {support}")
        lines.append(f"COUNTER: {self.counter}")
        lines.append(f"QUESTION: {self.question}")
        return "\n".join(lines)
