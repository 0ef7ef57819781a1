from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Iterator, List, Optional

logger = logging.getLogger(__name__)


class TranslationStatus(str, Enum):
    PENDING = "pending"
    TRANSLATING = "translating"
    REFINING = "refining"
    OPTIMISTIC = "optimistic"
    SEMANTIC = "semantic"
    ERROR = "error"


IN_FLIGHT_STATUSES = (TranslationStatus.TRANSLATING, TranslationStatus.REFINING)


@dataclass
class Caption:
    id: int
    speaker: str
    text: str
    created_at: float
    updated_at: float
    is_finalized: bool = False
    translation: str = ""
    translation_status: TranslationStatus = TranslationStatus.PENDING
    translation_error: Optional[str] = None
    last_translated_length: int = 0
    user_edited: bool = False

    @property
    def time_label(self) -> str:
        return time.strftime("%H:%M:%S", time.localtime(self.updated_at))

    def set_dispatched(self, mode: str) -> None:
        if mode == "semantic" and self.translation:
            self.translation_status = TranslationStatus.REFINING
        else:
            self.translation_status = TranslationStatus.TRANSLATING
        self.last_translated_length = len(self.text)

    def set_translated(self, mode: str, translation: str) -> bool:
        """Apply a successful result; only valid while a dispatch is in flight."""
        if self.translation_status not in IN_FLIGHT_STATUSES:
            return False
        if not self.user_edited:
            self.translation = translation
        self.translation_status = (
            TranslationStatus.SEMANTIC if mode == "semantic" else TranslationStatus.OPTIMISTIC
        )
        self.translation_error = None
        return True

    def set_failed(self, error: str) -> bool:
        if self.translation_status not in IN_FLIGHT_STATUSES:
            return False
        # Prior translation text stays visible next to the error marker.
        self.translation_status = TranslationStatus.ERROR
        self.translation_error = error or "Translation failed"
        return True

    def set_pending(self, *, clear_translation: bool = False) -> None:
        self.translation_status = TranslationStatus.PENDING
        self.translation_error = None
        if clear_translation and not self.user_edited:
            self.translation = ""
            self.last_translated_length = 0


EvictionListener = Callable[[int], None]


@dataclass
class CaptionStore:
    """
    Ordered, capacity-bounded caption timeline (oldest first).
    Ids come from a session counter and are never reused, even after eviction.
    """

    max_captions: int = 200
    clock: Callable[[], float] = time.time
    _captions: Deque[Caption] = field(default_factory=deque, init=False, repr=False)
    _next_id: int = field(default=0, init=False, repr=False)
    _listeners: List[EvictionListener] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_captions <= 0:
            raise ValueError("max_captions must be > 0")

    def __len__(self) -> int:
        return len(self._captions)

    def __iter__(self) -> Iterator[Caption]:
        return iter(list(self._captions))

    def add_eviction_listener(self, listener: EvictionListener) -> None:
        self._listeners.append(listener)

    def append(self, speaker: str, text: str) -> int:
        self._next_id += 1
        now = self.clock()
        caption = Caption(
            id=self._next_id,
            speaker=speaker,
            text=text,
            created_at=now,
            updated_at=now,
            last_translated_length=len(text),
        )
        self._captions.append(caption)
        while len(self._captions) > self.max_captions:
            removed = self._captions.popleft()
            logger.debug("caption_evicted", extra={"caption_id": removed.id})
            for listener in list(self._listeners):
                listener(removed.id)
        return caption.id

    def get(self, caption_id: int) -> Optional[Caption]:
        for caption in reversed(self._captions):
            if caption.id == caption_id:
                return caption
        return None

    def all(self) -> List[Caption]:
        return list(self._captions)

    def recent(self, n: int) -> List[Caption]:
        if n <= 0:
            return []
        return list(self._captions)[-n:]

    def before(self, caption_id: int, n: int) -> List[Caption]:
        """Up to n captions immediately preceding caption_id, oldest first."""
        items = list(self._captions)
        for i, caption in enumerate(items):
            if caption.id == caption_id:
                return items[max(0, i - n) : i]
        return []

    def update_text(self, caption_id: int, text: str) -> bool:
        caption = self.get(caption_id)
        if caption is None:
            return False
        caption.text = text
        caption.updated_at = self.clock()
        if caption.is_finalized:
            # Finalized text changed: the old translation is stale.
            caption.is_finalized = False
            caption.set_pending()
        return True

    def finalize(self, caption_id: int) -> bool:
        caption = self.get(caption_id)
        if caption is None or caption.is_finalized:
            return False
        caption.is_finalized = True
        return True

    def mark_user_edited(self, caption_id: int, translation: str) -> bool:
        caption = self.get(caption_id)
        if caption is None:
            return False
        caption.translation = translation
        caption.user_edited = True
        return True

    def clear(self) -> None:
        while self._captions:
            removed = self._captions.popleft()
            for listener in list(self._listeners):
                listener(removed.id)
