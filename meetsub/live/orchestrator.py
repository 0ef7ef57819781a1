from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Set

from meetsub.captions.store import Caption, CaptionStore, TranslationStatus
from meetsub.contracts import TranslationRequest, TranslationResult, TranslationSettings
from meetsub.live.debounce import DebounceScheduler
from meetsub.nlp.translator.base import Translator
from meetsub.nlp.translator.errors import TRANSLATION_FAILED

logger = logging.getLogger(__name__)

OPTIMISTIC = "optimistic"
SEMANTIC = "semantic"

ChangeHook = Callable[[Caption, str], None]


def format_context_line(caption: Caption) -> str:
    line = f"[{caption.speaker}]: {caption.text}"
    if caption.user_edited and caption.translation:
        line += f' = "{caption.translation}"'
    return line


class TranslationOrchestrator:
    """
    Drive each caption's translation state.

    - One in-flight request per caption id; a dispatch while one runs is a no-op.
    - Text updates reschedule a semantic dispatch `semantic_delay_sec` after the
      last update, and fire an optimistic one at once when the text grew by
      `optimistic_growth_chars` since the last dispatch.
    - A semantic request that lands while another is in flight runs when that
      one completes.
    """

    def __init__(
        self,
        store: CaptionStore,
        translator: Translator,
        settings: Callable[[], TranslationSettings],
        *,
        semantic_delay_sec: float = 1.5,
        optimistic_growth_chars: int = 20,
        context_size: int = 5,
        on_change: Optional[ChangeHook] = None,
    ) -> None:
        if semantic_delay_sec < 0:
            raise ValueError("semantic_delay_sec must be >= 0")
        if optimistic_growth_chars <= 0:
            raise ValueError("optimistic_growth_chars must be > 0")
        self.store = store
        self.translator = translator
        self._settings = settings
        self.semantic_delay_sec = float(semantic_delay_sec)
        self.optimistic_growth_chars = int(optimistic_growth_chars)
        self.context_size = max(0, int(context_size))
        self.on_change = on_change
        self._in_flight: Dict[int, asyncio.Task] = {}
        self._semantic_after_flight: Set[int] = set()
        self._debounce = DebounceScheduler()
        store.add_eviction_listener(self.forget)

    # -- state queries --------------------------------------------------

    def in_flight(self, caption_id: int) -> bool:
        return caption_id in self._in_flight

    def semantic_pending(self, caption_id: int) -> bool:
        return self._debounce.pending(caption_id)

    @property
    def enabled(self) -> bool:
        return bool(self._settings().translation_enabled)

    # -- caption lifecycle hooks ----------------------------------------

    def _automatic(self, caption: Caption) -> bool:
        # Results never replace a user edit, so skip the provider call.
        return self.enabled and not caption.user_edited

    def on_caption_created(self, caption: Caption) -> None:
        if not self._automatic(caption):
            return
        self.dispatch(caption.id, OPTIMISTIC)
        self._schedule_semantic(caption.id)

    def on_caption_updated(self, caption: Caption) -> None:
        if not self._automatic(caption):
            return
        growth = len(caption.text) - caption.last_translated_length
        if growth >= self.optimistic_growth_chars or not caption.translation:
            self.dispatch(caption.id, OPTIMISTIC)
        if not caption.is_finalized:
            self._schedule_semantic(caption.id)

    def on_caption_finalized(self, caption: Caption) -> None:
        self._debounce.cancel(caption.id)
        if not self._automatic(caption):
            return
        up_to_date = (
            caption.translation_status == TranslationStatus.SEMANTIC
            and caption.last_translated_length == len(caption.text)
        )
        if not up_to_date:
            self._dispatch_or_defer(caption.id)

    # -- user actions ---------------------------------------------------

    def translate_now(self, caption_id: int) -> bool:
        """Manual request: skip the timer and the enabled switch."""
        self._debounce.cancel(caption_id)
        return self._dispatch_or_defer(caption_id)

    def retranslate(self, caption_id: int) -> bool:
        caption = self.store.get(caption_id)
        if caption is None or self.in_flight(caption_id):
            return False
        self._debounce.cancel(caption_id)
        # An explicit retranslate replaces the user's own edit.
        caption.user_edited = False
        caption.set_pending(clear_translation=True)
        self._notify(caption, "translation")
        return self.dispatch(caption_id, SEMANTIC)

    def forget(self, caption_id: int) -> None:
        """Drop timers and in-flight work for a caption that left the store."""
        self._debounce.cancel(caption_id)
        self._semantic_after_flight.discard(caption_id)
        task = self._in_flight.pop(caption_id, None)
        if task is not None and not task.done():
            task.cancel()

    # -- dispatch -------------------------------------------------------

    def build_request(self, caption: Caption, mode: str) -> TranslationRequest:
        settings = self._settings()
        context = None
        if self.context_size:
            prior = self.store.before(caption.id, self.context_size)
            if prior:
                context = "\n".join(format_context_line(c) for c in prior)
        return TranslationRequest(
            text=caption.text,
            target_lang=settings.target_language,
            mode=mode,
            speaker=caption.speaker or None,
            context=context,
            custom_instructions=settings.custom_prompt or None,
            caption_id=caption.id,
        )

    def dispatch(self, caption_id: int, mode: str) -> bool:
        if mode not in (OPTIMISTIC, SEMANTIC):
            raise ValueError(f"Unknown translation mode: {mode}")
        if caption_id in self._in_flight:
            return False
        caption = self.store.get(caption_id)
        if caption is None:
            return False

        request = self.build_request(caption, mode)
        caption.set_dispatched(mode)
        task = asyncio.get_running_loop().create_task(
            self._run(caption_id, mode, request),
            name=f"meetsub-translate-{caption_id}",
        )
        self._in_flight[caption_id] = task
        logger.debug(
            "translate_dispatched",
            extra={"caption_id": caption_id, "mode": mode, "chars": len(request.text)},
        )
        self._notify(caption, "translation")
        return True

    def _dispatch_or_defer(self, caption_id: int) -> bool:
        if caption_id in self._in_flight:
            self._semantic_after_flight.add(caption_id)
            return False
        return self.dispatch(caption_id, SEMANTIC)

    def _schedule_semantic(self, caption_id: int) -> None:
        self._debounce.schedule(
            caption_id,
            self.semantic_delay_sec,
            lambda: self._fire_semantic(caption_id),
        )

    def _fire_semantic(self, caption_id: int) -> None:
        caption = self.store.get(caption_id)
        if caption is None or caption.user_edited:
            return
        stale = caption.last_translated_length != len(caption.text)
        if stale or caption.translation_status != TranslationStatus.SEMANTIC:
            self._dispatch_or_defer(caption_id)

    async def _call_translator(self, request: TranslationRequest) -> TranslationResult:
        try:
            return await self.translator.translate(request)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("translate_crash", extra={"caption_id": request.caption_id})
            return TranslationResult(success=False, error=TRANSLATION_FAILED)

    async def _run(self, caption_id: int, mode: str, request: TranslationRequest) -> None:
        try:
            result = await self._call_translator(request)
        finally:
            if self._in_flight.get(caption_id) is asyncio.current_task():
                del self._in_flight[caption_id]

        caption = self.store.get(caption_id)
        if caption is None:
            logger.debug("translate_result_dropped", extra={"caption_id": caption_id})
            self._semantic_after_flight.discard(caption_id)
            return

        if result.success and result.translation:
            applied = caption.set_translated(mode, result.translation)
        else:
            applied = caption.set_failed(result.error or TRANSLATION_FAILED)
        if applied:
            self._notify(caption, "translation")

        if caption_id in self._semantic_after_flight:
            self._semantic_after_flight.discard(caption_id)
            if not caption.user_edited:
                self.dispatch(caption_id, SEMANTIC)

    def _notify(self, caption: Caption, event: str) -> None:
        if self.on_change is not None:
            self.on_change(caption, event)

    # -- shutdown -------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until no translation is in flight (follow-up dispatches included)."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def close(self) -> None:
        self._debounce.cancel_all()
        self._semantic_after_flight.clear()
        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
