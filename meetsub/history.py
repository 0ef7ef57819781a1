from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class HistorySink(Protocol):
    def upsert(self, caption_id: int, record: Dict[str, Any]) -> None:
        ...


@dataclass
class MeetingSession:
    id: str
    meeting_code: str = "unknown"
    title: Optional[str] = None
    start_time: float = 0.0
    end_time: Optional[float] = None
    captions: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        out = asdict(self)
        # Caption order follows caption id, which follows creation.
        out["captions"] = [self.captions[k] for k in sorted(self.captions, key=int)]
        return out


class JsonHistoryStore:
    """
    Meeting history kept in one JSON file, newest session first.
    Captions are upserted by caption id; call save() to persist.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        meeting_code: str = "unknown",
        title: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.path = Path(path)
        self.session = MeetingSession(
            id=session_id or uuid.uuid4().hex,
            meeting_code=meeting_code,
            title=title,
            start_time=time.time(),
        )

    def upsert(self, caption_id: int, record: Dict[str, Any]) -> None:
        entry = dict(self.session.captions.get(str(caption_id), {}))
        entry.update(record)
        entry["caption_id"] = caption_id
        self.session.captions[str(caption_id)] = entry

    def list_sessions(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8-sig") as f:
            loaded = json.load(f)
        if not isinstance(loaded, list):
            raise ValueError(f"history must be a JSON array: {self.path}")
        return loaded

    def _write(self, sessions: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(sessions, f, ensure_ascii=False, indent=2)
            f.write("\n")

    def save(self) -> Path:
        self.session.end_time = time.time()
        payload = self.session.to_json()
        sessions = [s for s in self.list_sessions() if s.get("id") != self.session.id]
        sessions.append(payload)
        sessions.sort(key=lambda s: float(s.get("start_time") or 0.0), reverse=True)
        self._write(sessions)
        logger.info(
            "history_saved",
            extra={"session_id": self.session.id, "captions": len(self.session.captions)},
        )
        return self.path

    def delete_session(self, session_id: str) -> bool:
        sessions = self.list_sessions()
        kept = [s for s in sessions if s.get("id") != session_id]
        if len(kept) == len(sessions):
            return False
        self._write(kept)
        return True

    def clear(self) -> None:
        self._write([])
