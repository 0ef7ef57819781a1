from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from meetsub.app.config import app_paths, settings_from_args
from meetsub.captions.matcher import ContinuityMatcher
from meetsub.contracts import TranslationSettings
from meetsub.history import JsonHistoryStore
from meetsub.live.session import CaptionSession
from meetsub.nlp.translator.base import Translator
from meetsub.nlp.translator.factory import get_translator
from meetsub.ui.bridge import CaptionEventBus


@dataclass(frozen=True)
class CaptionServices:
    settings: TranslationSettings
    translator: Translator
    session: CaptionSession
    bus: CaptionEventBus
    history: Optional[JsonHistoryStore]


def build_caption_services(
    args: Any,
    *,
    translator: Optional[Translator] = None,
    history_path: Optional[Path] = None,
) -> CaptionServices:
    """Wire settings, translator, history and bus into one session. Needs a running loop."""
    settings = settings_from_args(args)
    if translator is None:
        translator = get_translator(
            lambda: settings,
            timeout_sec=max(1.0, float(args.request_timeout_sec)),
        )
    history = None
    if bool(args.history_enabled):
        source = str(getattr(args, "path", "") or "")
        history = JsonHistoryStore(
            history_path or app_paths().history_path,
            meeting_code="replay",
            title=Path(source).name or None,
        )
    session = CaptionSession(
        translator,
        lambda: settings,
        max_captions=max(1, int(args.max_captions)),
        matcher=ContinuityMatcher(lookback=max(1, int(args.lookback))),
        semantic_delay_sec=max(0.0, float(args.semantic_delay_ms) / 1000.0),
        optimistic_growth_chars=max(1, int(args.optimistic_growth_chars)),
        context_size=max(0, int(args.context_size)),
        history=history,
    )
    bus = CaptionEventBus()
    session.add_listener(bus.listener)
    return CaptionServices(
        settings=settings,
        translator=translator,
        session=session,
        bus=bus,
        history=history,
    )
