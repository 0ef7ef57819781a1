from __future__ import annotations

import asyncio

import pytest

from meetsub.captions.store import Caption, CaptionStore, TranslationStatus
from meetsub.contracts import TranslationRequest, TranslationResult, TranslationSettings
from meetsub.live.debounce import DebounceScheduler
from meetsub.live.orchestrator import TranslationOrchestrator, format_context_line
from meetsub.nlp.translator.base import ProviderClient, Translator
from meetsub.nlp.translator.errors import TRANSLATION_FAILED, RateLimitedError
from meetsub.nlp.translator.service import TranslationService

ENABLED = TranslationSettings(translation_enabled=True, target_language="fr", custom_prompt="Be brief.")
DISABLED = TranslationSettings(translation_enabled=False)


class _InstantTranslator(Translator):
    def __init__(self) -> None:
        self.requests: list[TranslationRequest] = []

    @property
    def name(self) -> str:
        return "instant"

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        self.requests.append(req)
        return TranslationResult(success=True, translation=f"{req.mode}:{req.text}")


class _GatedTranslator(Translator):
    """Each call waits until the test releases it."""

    def __init__(self) -> None:
        self.requests: list[TranslationRequest] = []
        self.gates: list[asyncio.Event] = []
        self.outcomes: list[TranslationResult] = []

    @property
    def name(self) -> str:
        return "gated"

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        self.requests.append(req)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        if self.outcomes:
            return self.outcomes.pop(0)
        return TranslationResult(success=True, translation=f"{req.mode}:{req.text}")


class _CrashingTranslator(Translator):
    @property
    def name(self) -> str:
        return "crash"

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        raise RuntimeError("socket exploded")


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _setup(translator: Translator, settings: TranslationSettings = ENABLED, **kw):
    store = CaptionStore(max_captions=kw.pop("max_captions", 50))
    seen: list[TranslationStatus] = []
    orch = TranslationOrchestrator(
        store,
        translator,
        lambda: settings,
        semantic_delay_sec=kw.pop("semantic_delay_sec", 0.02),
        optimistic_growth_chars=kw.pop("optimistic_growth_chars", 20),
        context_size=kw.pop("context_size", 5),
        on_change=lambda caption, event: seen.append(caption.translation_status),
    )
    return store, orch, seen


def _add(store: CaptionStore, speaker: str, text: str) -> Caption:
    caption = store.get(store.append(speaker, text))
    assert caption is not None
    return caption


@pytest.mark.asyncio
async def test_debounce_only_last_schedule_fires() -> None:
    fired: list[str] = []
    debounce = DebounceScheduler()
    debounce.schedule(1, 0.01, lambda: fired.append("first"))
    debounce.schedule(1, 0.01, lambda: fired.append("second"))
    debounce.schedule(2, 0.01, lambda: fired.append("other"))
    assert debounce.pending(1) and len(debounce) == 2

    assert debounce.cancel(2)
    assert not debounce.cancel(2)
    await asyncio.sleep(0.05)

    assert fired == ["second"]
    assert not debounce.pending(1)
    assert len(debounce) == 0


@pytest.mark.asyncio
async def test_debounce_cancel_all() -> None:
    fired: list[int] = []
    debounce = DebounceScheduler()
    for key in range(3):
        debounce.schedule(key, 0.01, lambda k=key: fired.append(k))
    debounce.cancel_all()
    await asyncio.sleep(0.03)
    assert fired == []


@pytest.mark.asyncio
async def test_disabled_translation_does_nothing_automatically() -> None:
    translator = _InstantTranslator()
    store, orch, seen = _setup(translator, DISABLED)
    caption = _add(store, "Alice", "hello")

    orch.on_caption_created(caption)
    orch.on_caption_updated(caption)
    orch.on_caption_finalized(caption)
    await asyncio.sleep(0.05)

    assert translator.requests == []
    assert caption.translation_status == TranslationStatus.PENDING
    assert seen == []


@pytest.mark.asyncio
async def test_created_caption_goes_optimistic_then_semantic() -> None:
    translator = _InstantTranslator()
    store, orch, seen = _setup(translator)
    caption = _add(store, "Alice", "hello")

    orch.on_caption_created(caption)
    assert caption.translation_status == TranslationStatus.TRANSLATING
    assert orch.in_flight(caption.id)
    assert orch.semantic_pending(caption.id)

    await orch.wait_idle()
    assert caption.translation_status == TranslationStatus.OPTIMISTIC
    assert caption.translation == "optimistic:hello"

    await asyncio.sleep(0.05)
    await orch.wait_idle()
    assert caption.translation_status == TranslationStatus.SEMANTIC
    assert caption.translation == "semantic:hello"
    assert [r.mode for r in translator.requests] == ["optimistic", "semantic"]
    # every result status is preceded by a dispatch status
    assert seen == [
        TranslationStatus.TRANSLATING,
        TranslationStatus.OPTIMISTIC,
        TranslationStatus.REFINING,
        TranslationStatus.SEMANTIC,
    ]


@pytest.mark.asyncio
async def test_one_request_in_flight_per_caption() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")

    assert orch.dispatch(caption.id, "optimistic")
    await _settle()
    assert not orch.dispatch(caption.id, "optimistic")
    assert not orch.dispatch(caption.id, "semantic")
    assert len(translator.requests) == 1

    translator.gates[0].set()
    await _settle()
    assert not orch.in_flight(caption.id)
    assert caption.translation_status == TranslationStatus.OPTIMISTIC


@pytest.mark.asyncio
async def test_dispatch_rejects_unknown_mode_and_missing_caption() -> None:
    store, orch, _ = _setup(_InstantTranslator())
    with pytest.raises(ValueError):
        orch.dispatch(1, "fast")
    assert orch.dispatch(999, "semantic") is False


@pytest.mark.asyncio
async def test_eviction_cancels_timer_and_drops_late_result() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator, max_captions=1)
    caption = _add(store, "Alice", "hello")
    orch.on_caption_created(caption)
    await _settle()
    assert orch.semantic_pending(caption.id)
    assert orch.in_flight(caption.id)

    store.append("Bob", "next")

    assert not orch.semantic_pending(caption.id)
    assert not orch.in_flight(caption.id)
    await asyncio.sleep(0.05)
    assert len(translator.requests) == 1
    assert caption.translation == ""


@pytest.mark.asyncio
async def test_finalize_during_flight_defers_semantic_until_completion() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator, semantic_delay_sec=10.0)
    caption = _add(store, "Alice", "hello")
    orch.on_caption_created(caption)
    await _settle()

    store.finalize(caption.id)
    orch.on_caption_finalized(caption)
    assert not orch.semantic_pending(caption.id)
    assert len(translator.requests) == 1

    translator.gates[0].set()
    await _settle()
    assert [r.mode for r in translator.requests] == ["optimistic", "semantic"]
    assert caption.translation_status == TranslationStatus.REFINING
    assert caption.translation == "optimistic:hello"

    translator.gates[1].set()
    await _settle()
    assert caption.translation_status == TranslationStatus.SEMANTIC
    assert caption.translation == "semantic:hello"


@pytest.mark.asyncio
async def test_finalize_skips_when_semantic_is_current() -> None:
    translator = _InstantTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")
    orch.translate_now(caption.id)
    await orch.wait_idle()
    assert caption.translation_status == TranslationStatus.SEMANTIC

    store.finalize(caption.id)
    orch.on_caption_finalized(caption)
    await orch.wait_idle()
    assert len(translator.requests) == 1


@pytest.mark.asyncio
async def test_small_growth_waits_for_semantic_large_growth_goes_optimistic() -> None:
    translator = _InstantTranslator()
    store, orch, _ = _setup(translator, semantic_delay_sec=10.0)
    caption = _add(store, "Alice", "hi")
    orch.on_caption_created(caption)
    await orch.wait_idle()

    store.update_text(caption.id, "hi there")
    orch.on_caption_updated(caption)
    assert not orch.in_flight(caption.id)
    assert orch.semantic_pending(caption.id)

    store.update_text(caption.id, "hi there, this sentence grew a lot")
    orch.on_caption_updated(caption)
    assert orch.in_flight(caption.id)
    await orch.wait_idle()
    assert caption.translation == "optimistic:hi there, this sentence grew a lot"
    await orch.close()


@pytest.mark.asyncio
async def test_failure_keeps_previous_translation_and_sets_error() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")
    orch.translate_now(caption.id)
    await _settle()
    translator.gates[0].set()
    await _settle()
    assert caption.translation == "semantic:hello"

    translator.outcomes.append(TranslationResult(success=False, error="Invalid API key"))
    assert orch.retranslate(caption.id)
    assert caption.translation == ""
    await _settle()
    translator.gates[1].set()
    await _settle()
    assert caption.translation_status == TranslationStatus.ERROR
    assert caption.translation_error == "Invalid API key"


@pytest.mark.asyncio
async def test_translator_crash_becomes_error_status() -> None:
    store, orch, _ = _setup(_CrashingTranslator())
    caption = _add(store, "Alice", "hello")
    orch.translate_now(caption.id)
    await orch.wait_idle()
    assert caption.translation_status == TranslationStatus.ERROR
    assert caption.translation_error == TRANSLATION_FAILED
    assert not orch.in_flight(caption.id)


@pytest.mark.asyncio
async def test_retranslate_refused_while_in_flight() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")
    orch.translate_now(caption.id)
    assert orch.retranslate(caption.id) is False
    assert orch.retranslate(999) is False
    await orch.close()
    assert not orch.in_flight(caption.id)


@pytest.mark.asyncio
async def test_translate_now_ignores_enabled_switch() -> None:
    translator = _InstantTranslator()
    store, orch, _ = _setup(translator, DISABLED)
    caption = _add(store, "Alice", "hello")
    assert orch.translate_now(caption.id)
    await orch.wait_idle()
    assert caption.translation == "semantic:hello"


@pytest.mark.asyncio
async def test_request_carries_context_and_settings() -> None:
    translator = _InstantTranslator()
    store, orch, _ = _setup(translator, context_size=2)
    _add(store, "Alice", "zero")
    _add(store, "Alice", "one")
    two = _add(store, "Bob", "two")
    store.mark_user_edited(two.id, "deux")
    three = _add(store, "Alice", "three")

    req = orch.build_request(three, "semantic")
    assert req.context == '[Alice]: one\n[Bob]: two = "deux"'
    assert req.target_lang == "fr"
    assert req.custom_instructions == "Be brief."
    assert req.speaker == "Alice"
    assert req.caption_id == three.id
    assert format_context_line(three) == "[Alice]: three"


@pytest.mark.asyncio
async def test_close_cancels_timers_and_work() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")
    orch.on_caption_created(caption)
    await _settle()
    await orch.close()
    assert not orch.semantic_pending(caption.id)
    assert not orch.in_flight(caption.id)
    await asyncio.sleep(0.05)
    assert len(translator.requests) == 1


def test_orchestrator_rejects_bad_thresholds() -> None:
    with pytest.raises(ValueError):
        TranslationOrchestrator(CaptionStore(), _InstantTranslator(), lambda: ENABLED, optimistic_growth_chars=0)
    with pytest.raises(ValueError):
        TranslationOrchestrator(CaptionStore(), _InstantTranslator(), lambda: ENABLED, semantic_delay_sec=-1)


@pytest.mark.asyncio
async def test_rate_limited_model_falls_back_and_caption_has_no_error() -> None:
    class _Client(ProviderClient):
        @property
        def name(self) -> str:
            return "fake"

        async def generate(self, prompt: str, model: str) -> str:
            if model == "gpt-4.1-nano":
                raise RateLimitedError("429")
            return f"{model} says hi"

    settings = TranslationSettings(
        provider="openai",
        openai_api_key="sk",
        model="gpt-4.1-nano",
        translation_enabled=True,
    )
    service = TranslationService(lambda: settings, lambda s: _Client())
    store, orch, _ = _setup(service, settings)
    caption = _add(store, "Alice", "hello")

    orch.translate_now(caption.id)
    await orch.wait_idle()

    assert caption.translation_status == TranslationStatus.SEMANTIC
    assert caption.translation == "gpt-4.1-mini says hi"
    assert caption.translation_error is None


@pytest.mark.asyncio
async def test_user_edited_caption_gets_no_automatic_requests() -> None:
    translator = _InstantTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")
    store.mark_user_edited(caption.id, "salut")

    store.update_text(caption.id, "hello everyone, welcome to the weekly sync")
    orch.on_caption_updated(caption)
    store.finalize(caption.id)
    orch.on_caption_finalized(caption)
    await asyncio.sleep(0.05)

    assert translator.requests == []
    assert not orch.semantic_pending(caption.id)
    assert caption.translation == "salut"
    assert caption.translation_status == TranslationStatus.PENDING


@pytest.mark.asyncio
async def test_edit_during_flight_skips_deferred_semantic() -> None:
    translator = _GatedTranslator()
    store, orch, _ = _setup(translator)
    caption = _add(store, "Alice", "hello")
    orch.on_caption_created(caption)
    await _settle()
    store.finalize(caption.id)
    orch.on_caption_finalized(caption)
    store.mark_user_edited(caption.id, "salut")

    translator.gates[0].set()
    await orch.wait_idle()

    assert len(translator.requests) == 1
    assert caption.translation == "salut"
