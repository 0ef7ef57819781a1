from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from meetsub.captions.matcher import ContinuityMatcher, MatchDecision, MatchResult
from meetsub.captions.store import IN_FLIGHT_STATUSES, Caption, CaptionStore
from meetsub.contracts import TranscriptRecord, TranslationSettings
from meetsub.history import HistorySink
from meetsub.live.orchestrator import TranslationOrchestrator
from meetsub.live.state import SessionState, SessionStateTracker
from meetsub.nlp.translator.base import Translator
from meetsub.wire.transcript import UNKNOWN_SPEAKER, decode_device_info, decode_transcript

logger = logging.getLogger(__name__)

CaptionListener = Callable[[Caption, str], None]


def history_record(caption: Caption) -> Dict[str, Any]:
    return {
        "speaker": caption.speaker,
        "text": caption.text,
        "translation": caption.translation or None,
        "time": caption.time_label,
        "timestamp": caption.updated_at,
    }


class CaptionSession:
    """
    Everything one meeting needs: store, matcher, orchestrator, listeners.

    Build one per meeting inside a running event loop and close() it at the
    end. Listeners get (caption, event) with event in
    created | updated | finalized | translation | edited.
    """

    def __init__(
        self,
        translator: Translator,
        settings: Callable[[], TranslationSettings],
        *,
        max_captions: int = 200,
        matcher: Optional[ContinuityMatcher] = None,
        semantic_delay_sec: float = 1.5,
        optimistic_growth_chars: int = 20,
        context_size: int = 5,
        history: Optional[HistorySink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = CaptionStore(max_captions=max_captions, clock=clock)
        self.matcher = matcher or ContinuityMatcher()
        self.history = history
        self.state = SessionStateTracker()
        self._listeners: List[CaptionListener] = []
        self._speaker_names: Dict[str, str] = {}
        self.orchestrator = TranslationOrchestrator(
            self.store,
            translator,
            settings,
            semantic_delay_sec=semantic_delay_sec,
            optimistic_growth_chars=optimistic_growth_chars,
            context_size=context_size,
            on_change=self._on_translation_change,
        )
        self.state.set_running()

    # -- presentation / persistence hooks --------------------------------

    def add_listener(self, listener: CaptionListener) -> None:
        self._listeners.append(listener)

    def captions(self) -> List[Caption]:
        return self.store.all()

    def _emit(self, caption: Caption, event: str) -> None:
        for listener in list(self._listeners):
            listener(caption, event)

    def _persist(self, caption: Caption) -> None:
        if self.history is None:
            return
        self.history.upsert(caption.id, history_record(caption))

    def _on_translation_change(self, caption: Caption, event: str) -> None:
        self._emit(caption, event)
        # Dispatch-status flips are not history-worthy; results are.
        if caption.translation_status not in IN_FLIGHT_STATUSES:
            self._persist(caption)

    # -- ingestion -------------------------------------------------------

    def feed_bytes(self, data: bytes) -> Optional[MatchResult]:
        record = decode_transcript(data)
        if record is None:
            return None
        return self.add_record(record)

    def feed_device_info(self, data: bytes) -> int:
        devices = decode_device_info(data)
        for device in devices:
            self._speaker_names[device.device_id] = device.display_name
        return len(devices)

    def resolve_speaker(self, record: TranscriptRecord) -> str:
        if record.speaker_name and record.speaker_name != UNKNOWN_SPEAKER:
            return record.speaker_name
        if record.speaker_id and record.speaker_id in self._speaker_names:
            return self._speaker_names[record.speaker_id]
        return record.speaker_name or UNKNOWN_SPEAKER

    def add_record(self, record: TranscriptRecord) -> Optional[MatchResult]:
        if not record.text:
            return None
        return self.add_caption(self.resolve_speaker(record), record.text, is_final=record.is_final)

    def add_caption(self, speaker: str, text: str, *, is_final: bool = False) -> MatchResult:
        if not self.state.accepting:
            return MatchResult(MatchDecision.DUPLICATE)

        text = (text or "").strip()
        result = self.matcher.match(speaker, text, self.store.all())

        if result.decision is MatchDecision.NEW:
            self._supersede(speaker)
            caption_id = self.store.append(speaker, text)
            caption = self.store.recent(1)[0]
            self._emit(caption, "created")
            self._persist(caption)
            self.orchestrator.on_caption_created(caption)
            result = MatchResult(MatchDecision.NEW, caption_id)
        elif result.decision is MatchDecision.CONTINUATION and result.caption_id is not None:
            self.store.update_text(result.caption_id, text)
            caption = self.store.get(result.caption_id)
            if caption is not None:
                self._emit(caption, "updated")
                self._persist(caption)
                self.orchestrator.on_caption_updated(caption)

        if is_final and result.caption_id is not None:
            caption = self.store.get(result.caption_id)
            if caption is not None and caption.speaker == speaker:
                self.finalize(caption.id)
        return result

    def _supersede(self, speaker: str) -> None:
        # A new utterance from the same speaker closes their previous one.
        for caption in reversed(self.store.recent(self.matcher.lookback)):
            if caption.speaker == speaker:
                if not caption.is_finalized:
                    self.finalize(caption.id)
                return

    def finalize(self, caption_id: int) -> bool:
        if not self.store.finalize(caption_id):
            return False
        caption = self.store.get(caption_id)
        if caption is None:
            return False
        self._emit(caption, "finalized")
        self.orchestrator.on_caption_finalized(caption)
        return True

    # -- user actions ----------------------------------------------------

    def edit_translation(self, caption_id: int, translation: str) -> bool:
        if not self.store.mark_user_edited(caption_id, translation):
            return False
        caption = self.store.get(caption_id)
        if caption is not None:
            self._emit(caption, "edited")
            self._persist(caption)
        return True

    def retranslate(self, caption_id: int) -> bool:
        return self.orchestrator.retranslate(caption_id)

    def translate_now(self, caption_id: int) -> bool:
        return self.orchestrator.translate_now(caption_id)

    def pause(self) -> None:
        self.state.set_paused()

    def resume(self) -> None:
        self.state.set_resumed()

    def fail(self, detail: str) -> None:
        """Stop accepting fragments after an unrecoverable input or runtime error."""
        self.state.set_error(detail)
        logger.error("session_failed", extra={"detail": detail})

    # -- teardown --------------------------------------------------------

    async def drain(self) -> None:
        await self.orchestrator.wait_idle()

    async def close(self) -> None:
        await self.orchestrator.close()
        self._speaker_names.clear()
        if self.state.state != SessionState.ERROR:
            self.state.set_stopped()
        logger.info("session_closed", extra={"captions": len(self.store)})
