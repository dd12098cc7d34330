"""Read-only discourse graph endpoints."""

import logging
from typing import Dict

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from remarker_backend.models import DiscourseNode
from remarker_backend.schemas import NodeResponse, ThreadGraphResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/graph", tags=["graph"])


class ThreadListResponse(BaseModel):
    """Node counts per tracked thread."""

    threads: Dict[str, int]
    thread_count: int


def node_to_response(node: DiscourseNode) -> NodeResponse:
    return NodeResponse(
        id=node.id,
        parent_id=node.parent_id,
        thread_id=node.thread_id,
        author_tag=node.author_tag,
        content=node.content,
        stance=node.stance.value,
        kind=node.kind.value,
        child_ids=node.child_ids,
        created_at=node.created_at,
        forked_from=node.forked_from,
    )


@router.get("", response_model=ThreadListResponse)
async def list_threads(request: Request):
    threads = request.app.state.store.list_threads()
    return ThreadListResponse(threads=threads, thread_count=len(threads))


@router.get("/{thread_id}", response_model=ThreadGraphResponse)
async def get_thread_graph(thread_id: str, request: Request):
    store = request.app.state.store
    nodes = store.get_nodes_for_thread(thread_id)
    if not nodes:
        raise HTTPException(status_code=404, detail=f"No discourse data for thread {thread_id}")

    return ThreadGraphResponse(
        thread_id=thread_id,
        root_id=store.get_root_for_thread(thread_id),
        nodes=[node_to_response(node) for node in nodes],
        node_count=len(nodes),
    )
