"""Services for the Remarker discourse backend."""

from .content_generator import ContentGenerator
from .graph_store import DiscourseGraphStore
from .interaction_router import InteractionRouter
from .prompt_manager import PromptManager
from .stance_classifier import StanceClassifier

__all__ = [
    'ContentGenerator',
    'DiscourseGraphStore',
    'InteractionRouter',
    'PromptManager',
    'StanceClassifier',
]
