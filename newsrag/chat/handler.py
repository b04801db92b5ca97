"""
Chat Handler

Processes one chat message end to end: stores the user message, answers it
through the RAG service and stores the bot reply with its sources. Any
failure of the core is reported to the caller as a generic error.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from ..main_pipeline import NewsRAGSystem
from .history import ChatHistoryStore

logger = logging.getLogger(__name__)

PROCESSING_ERROR = 'Failed to process message'


class ChatHandler:
    """Bridges chat sessions and the news RAG service."""

    def __init__(self, system: NewsRAGSystem, history: Optional[ChatHistoryStore] = None):
        """
        Args:
            system: Initialized (or initializing) NewsRAGSystem
            history: Session history store (default: in-memory)
        """
        self.system = system
        self.history = history or ChatHistoryStore()

    def create_session(self) -> str:
        return self.history.create_session()

    def handle_message(
        self,
        session_id: str,
        message: str,
        sender: str = 'user'
    ) -> Dict[str, Any]:
        """
        Answer a chat message.

        Args:
            session_id: Session identifier
            message: User's message
            sender: Display name of the sender

        Returns:
            ``{'user_message': ..., 'bot_message': ...}`` on success, or
            ``{'error': 'Failed to process message'}`` if anything failed
        """
        user_message = {
            'id': str(uuid.uuid4()),
            'message': message,
            'sender': sender,
            'type': 'user',
        }

        try:
            user_message = self.history.save_message(session_id, user_message)

            answer = self.system.process_query(message)

            bot_message = self.history.save_message(session_id, {
                'id': str(uuid.uuid4()),
                'message': answer.response_text,
                'sender': 'bot',
                'type': 'bot',
                'sources': answer.to_dict()['sources'],
            })
        except Exception:
            logger.exception(f"Chat error in session {session_id}")
            return {'error': PROCESSING_ERROR}

        return {
            'user_message': user_message,
            'bot_message': bot_message,
        }

    def get_history(self, session_id: str, limit: Optional[int] = None):
        return self.history.get_history(session_id, limit=limit)

    def clear_session(self, session_id: str) -> None:
        self.history.clear_session(session_id)
