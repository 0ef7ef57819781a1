from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import Optional

from meetsub.captions.store import Caption


@dataclass(frozen=True)
class CaptionEvent:
    event: str
    caption_id: int
    speaker: str
    text: str
    time: str
    translation: str
    status: str
    error: Optional[str] = None

    @classmethod
    def from_caption(cls, caption: Caption, event: str) -> "CaptionEvent":
        return cls(
            event=event,
            caption_id=caption.id,
            speaker=caption.speaker,
            text=caption.text,
            time=caption.time_label,
            translation=caption.translation,
            status=caption.translation_status.value,
            error=caption.translation_error,
        )


class CaptionEventBus:
    """
    Handoff from the caption session to whatever renders it.
    The session pushes snapshots; the presenter polls (non-blocking).
    """
    def __init__(self, maxsize: int = 100):
        self.q: "queue.Queue[CaptionEvent]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def push(self, item: CaptionEvent) -> None:
        try:
            self.q.put_nowait(item)
        except queue.Full:
            # drop oldest to keep the presenter current
            try:
                _ = self.q.get_nowait()
                self.dropped += 1
            except queue.Empty:
                return
            try:
                self.q.put_nowait(item)
            except queue.Full:
                return

    def listener(self, caption: Caption, event: str) -> None:
        self.push(CaptionEvent.from_caption(caption, event))

    def pop(self) -> Optional[CaptionEvent]:
        try:
            return self.q.get_nowait()
        except queue.Empty:
            return None
