import asyncio
import logging
from typing import Dict

logger = logging.getLogger(__name__)


class ActiveTurns:
    """Stop signals for turns currently streaming, keyed by chat session."""

    def __init__(self):
        # Map session_id -> stop event of the running turn
        self.running: Dict[str, asyncio.Event] = {}

    def start(self, session_id: str) -> asyncio.Event:
        previous = self.running.get(session_id)
        if previous is not None:
            # A newer turn for the same session supersedes the old one
            previous.set()
        event = asyncio.Event()
        self.running[session_id] = event
        logger.info(f"Turn started for session {session_id[:8]}. Running turns: {len(self.running)}")
        return event

    def stop(self, session_id: str) -> bool:
        event = self.running.get(session_id)
        if event is None:
            return False
        event.set()
        logger.info(f"Stop requested for session {session_id[:8]}")
        return True

    def finish(self, session_id: str, event: asyncio.Event):
        if self.running.get(session_id) is event:
            del self.running[session_id]


active_turns = ActiveTurns()
