"""
Discourse Graph Store

Owns every DiscourseNode and enforces the graph invariants:

1. ``child_ids`` of N is exactly the ids of nodes whose ``parent_id`` is N.
2. Nodes without a parent carry the ``claim`` stance.
3. A child lives in the same thread as its parent.
4. Node ids are never reused, including after deletion.
5. Parent pointers are acyclic (a parent must exist before its child).

Mutations are serialized per thread with an ``asyncio.Lock``. Oracle calls
(reply classification) happen before the lock is taken and preconditions are
re-checked once it is held, so no await ever happens mid-mutation.
"""

import asyncio
import logging
import uuid
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set

from remarker_backend.errors import (
    DuplicateNodeError,
    DuplicateRootError,
    ThreadMismatchError,
    UnknownNodeError,
    UnknownParentError,
)
from remarker_backend.models import REPLY_STANCES, DiscourseNode, NodeKind, Stance
from remarker_backend.services.graph_snapshots import GraphSnapshotter
from remarker_backend.services.stance_classifier import StanceClassifier

logger = logging.getLogger("remarker_backend")

AI_AUTHOR_TAG = "ai"


def local_node_id() -> str:
    return f"local-{uuid.uuid4().hex[:12]}"


class DiscourseGraphStore:
    """In-memory discourse graph with per-thread serialized mutations and durable snapshots."""

    def __init__(
        self,
        classifier: StanceClassifier,
        snapshotter: Optional[GraphSnapshotter] = None,
        id_factory: Callable[[], str] = local_node_id,
    ):
        self.classifier = classifier
        self.snapshotter = snapshotter
        self._id_factory = id_factory

        self._nodes: Dict[str, DiscourseNode] = {}
        self._thread_index: Dict[str, List[str]] = defaultdict(list)
        self._retired_ids: Set[str] = set()
        self._thread_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Counter = Counter()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Restore the graph from the snapshotter. Returns the number of nodes loaded."""
        if self.snapshotter is None:
            return 0
        document = self.snapshotter.load()
        self.restore(document)
        return len(self._nodes)

    def restore(self, document: Dict[str, Any]) -> None:
        """
        Replace the in-memory graph with a snapshot document.

        Inconsistent snapshots are repaired rather than rejected: nodes whose
        parent is missing or lives in another thread are dropped along with
        their descendants, and ``child_ids`` are rebuilt from parent pointers
        (stored order kept, unlisted children appended in creation order).
        """
        nodes: Dict[str, DiscourseNode] = {}
        for node_id, record in (document.get("nodes") or {}).items():
            node = DiscourseNode.from_record(str(node_id), record)
            nodes[node.id] = node

        kept: Dict[str, DiscourseNode] = {}
        dropped: List[str] = []

        def _resolve(node: DiscourseNode, trail: Set[str]) -> bool:
            if node.id in kept:
                return True
            if node.parent_id is None:
                return True
            parent = nodes.get(node.parent_id)
            if parent is None or parent.thread_id != node.thread_id or node.id in trail:
                return False
            return _resolve(parent, trail | {node.id})

        for node in nodes.values():
            if _resolve(node, set()):
                if node.parent_id is None:
                    node.stance = Stance.CLAIM
                elif node.stance is Stance.CLAIM:
                    node.stance = Stance.COMMENT
                kept[node.id] = node
            else:
                dropped.append(node.id)

        for node in kept.values():
            stored = [cid for cid in node.child_ids if cid in kept and kept[cid].parent_id == node.id]
            ordered = list(dict.fromkeys(stored))
            for candidate in kept.values():
                if candidate.parent_id == node.id and candidate.id not in ordered:
                    ordered.append(candidate.id)
            if ordered != node.child_ids:
                logger.warning("[GRAPH] Repaired child_ids of node %s", node.id)
            node.child_ids = ordered

        if dropped:
            logger.warning("[GRAPH] Dropped %d node(s) with dangling parents: %s", len(dropped), dropped[:10])

        self._nodes = kept
        self._thread_index = defaultdict(list)
        for node in kept.values():
            self._thread_index[node.thread_id].append(node.id)
        self._retired_ids = (set(document.get("retired_ids") or []) | set(dropped)) - set(kept)
        logger.info("[GRAPH] Restored %d node(s) across %d thread(s)", len(kept), len(self._thread_index))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "nodes": {node_id: node.to_record() for node_id, node in self._nodes.items()},
            "retired_ids": sorted(self._retired_ids),
        }

    async def flush(self) -> None:
        if self.snapshotter is not None:
            await self.snapshotter.flush()

    async def close(self) -> None:
        await self.flush()
        logger.info("[GRAPH] Store closed with %d node(s)", len(self._nodes))

    def _persist(self) -> None:
        if self.snapshotter is not None:
            self.snapshotter.schedule(self.snapshot())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> DiscourseNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node.copy()

    def get_nodes_for_thread(self, thread_id: str) -> List[DiscourseNode]:
        return [self._nodes[node_id].copy() for node_id in self._thread_index.get(thread_id, [])]

    def get_root_for_thread(self, thread_id: str) -> Optional[str]:
        for node_id in self._thread_index.get(thread_id, []):
            if self._nodes[node_id].parent_id is None:
                return node_id
        return None

    def list_threads(self) -> Dict[str, int]:
        return {thread_id: len(ids) for thread_id, ids in self._thread_index.items() if ids}

    def check_consistency(self) -> List[str]:
        """Return a description of every invariant violation (empty when consistent)."""
        violations: List[str] = []
        for node in self._nodes.values():
            if node.parent_id is None:
                if node.stance is not Stance.CLAIM:
                    violations.append(f"root {node.id} has stance {node.stance.value}")
                continue
            parent = self._nodes.get(node.parent_id)
            if parent is None:
                violations.append(f"node {node.id} points at missing parent {node.parent_id}")
                continue
            if parent.thread_id != node.thread_id:
                violations.append(f"node {node.id} crosses from thread {parent.thread_id} to {node.thread_id}")
            if parent.child_ids.count(node.id) != 1:
                violations.append(f"parent {parent.id} lists child {node.id} {parent.child_ids.count(node.id)} times")
        for node in self._nodes.values():
            for child_id in node.child_ids:
                child = self._nodes.get(child_id)
                if child is None or child.parent_id != node.id:
                    violations.append(f"node {node.id} lists {child_id} which does not point back")
        for node_id in self._nodes:
            if node_id in self._retired_ids:
                violations.append(f"live node {node_id} reuses a retired id")
        return violations

    # ------------------------------------------------------------------
    # Identifier allocation
    # ------------------------------------------------------------------

    def _id_in_use(self, node_id: str) -> bool:
        return node_id in self._nodes or node_id in self._retired_ids

    def _allocate_id(self) -> str:
        while True:
            candidate = self._id_factory()
            if not self._id_in_use(candidate):
                return candidate
            logger.debug("[GRAPH] Generated id %s collides; retrying", candidate)

    # ------------------------------------------------------------------
    # Thread locks
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _locked_thread(self, thread_id: str) -> AsyncIterator[None]:
        """
        Hold the thread's mutation lock.

        A lock is discarded once nobody holds or waits for it and the thread
        has no nodes left, so emptied threads do not pin a lock forever.
        """
        lock = self._thread_locks[thread_id]
        self._lock_users[thread_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[thread_id] -= 1
            if self._lock_users[thread_id] <= 0:
                del self._lock_users[thread_id]
                if not self._thread_index.get(thread_id):
                    self._thread_locks.pop(thread_id, None)
                    self._thread_index.pop(thread_id, None)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_root(
        self,
        thread_id: str,
        content: str,
        kind: NodeKind = NodeKind.FLAT,
        node_id: Optional[str] = None,
        forked_from: Optional[str] = None,
    ) -> str:
        async with self._locked_thread(thread_id):
            existing_root = self.get_root_for_thread(thread_id)
            if existing_root is not None:
                raise DuplicateRootError(thread_id, existing_root)
            if node_id is not None and self._id_in_use(node_id):
                reason = "retired" if node_id in self._retired_ids else "already in use"
                raise DuplicateNodeError(node_id, reason)

            node = DiscourseNode(
                id=node_id or self._allocate_id(),
                thread_id=thread_id,
                author_tag=AI_AUTHOR_TAG,
                content=content,
                stance=Stance.CLAIM,
                kind=kind,
                forked_from=forked_from,
            )
            self._nodes[node.id] = node
            self._thread_index[thread_id].append(node.id)
            self._persist()

        logger.info("[GRAPH] Created root %s in thread %s (%s)", node.id, thread_id, kind.value)
        return node.id

    def _resolve_parent(self, parent_id: str, thread_id: str) -> DiscourseNode:
        parent = self._nodes.get(parent_id)
        if parent is None:
            raise UnknownParentError(parent_id)
        if parent.thread_id != thread_id:
            raise ThreadMismatchError(parent_id, parent.thread_id, thread_id)
        return parent

    def _is_redelivery(self, node_id: str, parent_id: str, thread_id: str) -> bool:
        existing = self._nodes.get(node_id)
        if existing is not None and existing.parent_id == parent_id and existing.thread_id == thread_id:
            return True
        if node_id in self._retired_ids:
            raise DuplicateNodeError(node_id, "retired")
        if existing is not None:
            raise DuplicateNodeError(node_id)
        return False

    async def create_reply(
        self,
        parent_id: str,
        thread_id: str,
        author_tag: str,
        content: str,
        node_id: Optional[str] = None,
        stance: Optional[Stance] = None,
    ) -> str:
        """
        Attach a reply under ``parent_id``.

        Without an explicit ``stance`` the reply is classified against the
        parent's content. Re-delivering a platform message that is already in
        the graph under the same parent returns its id unchanged.
        """
        if stance is not None and stance not in REPLY_STANCES:
            raise ValueError(f"Replies cannot carry stance {stance.value!r}")

        parent = self._resolve_parent(parent_id, thread_id)
        if node_id is not None and self._is_redelivery(node_id, parent_id, thread_id):
            logger.info("[GRAPH] Ignoring redelivered reply %s", node_id)
            return node_id

        if stance is None:
            stance = await self.classifier.classify(content, parent.content)

        async with self._locked_thread(thread_id):
            # The parent may have been deleted while the classifier was running.
            parent = self._resolve_parent(parent_id, thread_id)
            if node_id is not None and self._is_redelivery(node_id, parent_id, thread_id):
                logger.info("[GRAPH] Ignoring redelivered reply %s", node_id)
                return node_id

            node = DiscourseNode(
                id=node_id or self._allocate_id(),
                parent_id=parent_id,
                thread_id=thread_id,
                author_tag=author_tag,
                content=content,
                stance=stance,
            )
            self._nodes[node.id] = node
            self._thread_index[thread_id].append(node.id)
            parent.child_ids.append(node.id)
            self._persist()

        logger.info("[GRAPH] Created reply %s under %s as %s", node.id, parent_id, stance.value)
        return node.id

    async def edit_content(self, node_id: str, new_content: str) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)

        async with self._locked_thread(node.thread_id):
            node = self._nodes.get(node_id)
            if node is None:
                raise UnknownNodeError(node_id)
            if node.content == new_content:
                return
            node.content = new_content
            self._persist()

        logger.info("[GRAPH] Edited content of %s", node_id)

    async def delete_node(self, node_id: str) -> List[str]:
        """
        Cascade-delete a node and its whole subtree.

        The node is removed from its parent's ``child_ids`` and every removed
        id is retired. Returns the removed ids, the target first.
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)

        async with self._locked_thread(node.thread_id):
            node = self._nodes.get(node_id)
            if node is None:
                raise UnknownNodeError(node_id)

            removed: List[str] = []
            stack = [node_id]
            while stack:
                current = self._nodes[stack.pop()]
                removed.append(current.id)
                stack.extend(reversed(current.child_ids))

            if node.parent_id is not None:
                self._nodes[node.parent_id].child_ids.remove(node_id)

            removed_set = set(removed)
            for removed_id in removed:
                del self._nodes[removed_id]
            self._thread_index[node.thread_id] = [
                thread_node_id for thread_node_id in self._thread_index[node.thread_id]
                if thread_node_id not in removed_set
            ]
            self._retired_ids.update(removed)
            self._persist()

        logger.info("[GRAPH] Deleted %s and %d descendant(s)", node_id, len(removed) - 1)
        return removed
