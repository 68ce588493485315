"""
Append-only conversation history, optionally persisted to a JSON file.
"""
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .types import Message
from .utils import create_message

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Stores the messages of one conversation.

    Each stored message gets an ``id`` and a millisecond ``timestamp``.
    When ``path`` is given the conversation is loaded from and saved to it.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._messages: List[Dict[str, Any]] = []
        if self.path and self.path.exists():
            self._load()

    def append(self, role: str, content: Optional[str]) -> Dict[str, Any]:
        """
        Add a message to the conversation.

        Returns:
            The stored message, including its ``id`` and ``timestamp``.
        """
        stored = {
            **create_message(role, content),
            "id": uuid.uuid4().hex,
            "timestamp": int(time.time() * 1000),
        }
        self._messages.append(stored)
        self._save()
        return stored

    def list(self) -> List[Dict[str, Any]]:
        return [dict(m) for m in self._messages]

    def delete(self, message_id: str) -> bool:
        """Delete a message by id. Returns False if no such message exists."""
        remaining = [m for m in self._messages if m["id"] != message_id]
        if len(remaining) == len(self._messages):
            return False
        self._messages = remaining
        self._save()
        return True

    def clear(self) -> None:
        self._messages = []
        self._save()

    def history(self) -> List[Message]:
        """The conversation as canonical ``{role, content}`` messages for the API."""
        return [create_message(m["role"], m["content"]) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load conversation from %s: %s", self.path, exc)
            return
        self._messages = [m for m in data if isinstance(m, dict) and "id" in m]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._messages, ensure_ascii=False, indent=2), encoding="utf-8")
