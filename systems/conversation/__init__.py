"""
Conversation: mailbox + effect executor + engine
"""

from .engine import ConversationEngine
from .executor import EffectExecutor
from .mailbox import SubjectMailbox
from .system import ConversationSystem

__all__ = [
    "ConversationEngine",
    "EffectExecutor",
    "SubjectMailbox",
    "ConversationSystem",
]
