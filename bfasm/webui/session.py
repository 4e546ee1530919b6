from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from bfasm.interpreter import DEFAULT_TAPE_SIZE
from bfasm.operations import Program
from bfasm.visualizer import VisualizerSession


@dataclass
class SessionRecord:
    session_id: str
    session: VisualizerSession
    code: str


class SessionStore:
    """Thread-safe registry for VisualizerSession instances."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.RLock()

    def create_session(
        self,
        *,
        code: str,
        program: Program,
        input_template: List[int],
        tape_size: int = DEFAULT_TAPE_SIZE,
        tape_window: int = 10,
        max_steps: Optional[int] = None,
        history_limit: int = 200,
        skip_whitespace: bool = False,
    ) -> SessionRecord:
        session = VisualizerSession(
            program=program,
            input_template=input_template,
            tape_size=tape_size,
            tape_window=tape_window,
            max_steps=max_steps,
            history_limit=history_limit,
            skip_whitespace=skip_whitespace,
        )
        record = SessionRecord(session_id=uuid.uuid4().hex, session=session, code=code)
        with self._lock:
            self._sessions[record.session_id] = record
        return record

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            try:
                return self._sessions[session_id]
            except KeyError as exc:
                raise KeyError(f"Unknown session id: {session_id}") from exc

    def reset(self, session_id: str) -> SessionRecord:
        record = self.get(session_id)
        session = record.session
        session.history.clear()
        session.clear_breakpoints()
        session.hit_breakpoint = None
        session.restart()
        return record

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


__all__ = ["SessionRecord", "SessionStore"]
