"""
Error taxonomy for the discourse backend.

Graph errors are recoverable: they are reported to the end user and leave the
graph untouched. Oracle and transport failures wrap provider exceptions so the
router only has to know about these types.
"""

from typing import Optional


class DiscourseGraphError(Exception):
    """Base class for graph store precondition failures."""

    user_message = "That discourse operation could not be completed."

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownParentError(DiscourseGraphError):
    user_message = "The claim you are responding to no longer exists."

    def __init__(self, parent_id: str):
        self.parent_id = parent_id
        super().__init__(f"Parent node {parent_id!r} does not exist")


class UnknownNodeError(DiscourseGraphError):
    user_message = "That claim is not tracked in the discourse graph."

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id!r} does not exist")


class ThreadMismatchError(DiscourseGraphError):
    user_message = "Responses must be posted in the same thread as the claim."

    def __init__(self, parent_id: str, expected_thread_id: str, actual_thread_id: str):
        self.parent_id = parent_id
        self.expected_thread_id = expected_thread_id
        self.actual_thread_id = actual_thread_id
        super().__init__(
            f"Parent {parent_id!r} belongs to thread {expected_thread_id!r}, "
            f"not {actual_thread_id!r}"
        )


class DuplicateRootError(DiscourseGraphError):
    user_message = "This thread already has a root claim."

    def __init__(self, thread_id: str, existing_root_id: str):
        self.thread_id = thread_id
        self.existing_root_id = existing_root_id
        super().__init__(
            f"Thread {thread_id!r} already has root node {existing_root_id!r}"
        )


class DuplicateNodeError(DiscourseGraphError):
    user_message = "That message is already part of the discourse graph."

    def __init__(self, node_id: str, reason: str = "already in use"):
        self.node_id = node_id
        super().__init__(f"Node id {node_id!r} is {reason}")


class OracleFailure(Exception):
    """The generative-text oracle failed, timed out or returned nothing usable."""

    user_message = "The AI model is unavailable right now. Please try again."

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class TransportFailure(Exception):
    """A call to the chat platform failed."""

    user_message = "Error creating thread. Please check bot permissions (Create Threads, Send Messages)."

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)
