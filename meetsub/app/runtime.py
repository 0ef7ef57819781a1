from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from meetsub.captions.export import export_captions
from meetsub.live.session import CaptionSession
from meetsub.nlp.translator.base import Translator
from meetsub.ui.bridge import CaptionEvent, CaptionEventBus
from meetsub.wire.frames import iter_frames
from meetsub.wire.transcript import decode_transcript

from meetsub.app.services import build_caption_services

Printer = Callable[[str], None]


@dataclass(frozen=True)
class _ReplayItem:
    speaker: str
    text: str
    final: bool = False
    delay_ms: int = 0


def _log_event(logger: logging.Logger | None, level: int, event: str, **fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, event, extra=fields)


def format_event(ev: CaptionEvent) -> str | None:
    if ev.event in ("created", "updated", "finalized"):
        mark = "*" if ev.event == "finalized" else " "
        return f"[{ev.time}]{mark}{ev.speaker}: {ev.text}"
    if ev.event in ("translation", "edited"):
        if ev.status == "error":
            return f"[{ev.time}]  !! {ev.error}"
        if ev.translation and ev.status in ("optimistic", "semantic"):
            return f"[{ev.time}]  -> ({ev.status}) {ev.translation}"
    return None


def _drain_caption_bus(bus: CaptionEventBus, out: Printer, max_items: int) -> int:
    drained = 0
    while drained < max_items:
        ev = bus.pop()
        if ev is None:
            break
        line = format_event(ev)
        if line is not None:
            out(line)
        drained += 1
    return drained


def iter_jsonl_items(path: Path) -> Iterator[_ReplayItem]:
    with path.open("r", encoding="utf-8-sig") as f:
        for lineno, raw in enumerate(f, start=1):
            raw = raw.strip()
            if not raw or raw.startswith("#"):
                continue
            obj = json.loads(raw)
            if not isinstance(obj, dict):
                raise ValueError(f"{path}:{lineno}: expected a JSON object")
            yield _ReplayItem(
                speaker=str(obj.get("speaker") or ""),
                text=str(obj.get("text") or ""),
                final=bool(obj.get("final", False)),
                delay_ms=max(0, int(obj.get("delay_ms", 0))),
            )


async def _replay_jsonl(session: CaptionSession, path: Path, on_item: Callable[[], None]) -> int:
    fed = 0
    for item in iter_jsonl_items(path):
        if item.delay_ms:
            await asyncio.sleep(item.delay_ms / 1000.0)
        session.add_caption(item.speaker, item.text, is_final=item.final)
        fed += 1
        on_item()
        # let dispatched translations make progress between fragments
        await asyncio.sleep(0)
    return fed


async def _replay_frames(session: CaptionSession, data: bytes, on_item: Callable[[], None]) -> int:
    fed = 0
    for frame in iter_frames(data):
        session.feed_bytes(frame)
        fed += 1
        on_item()
        await asyncio.sleep(0)
    return fed


async def run_replay(
    args: Any,
    logger: logging.Logger | None = None,
    *,
    translator: Optional[Translator] = None,
    history_path: Optional[Path] = None,
    out: Printer = print,
) -> dict[str, Any]:
    path = Path(str(args.path))
    services = build_caption_services(args, translator=translator, history_path=history_path)
    session = services.session
    bus = services.bus

    def _flush() -> None:
        if args.print_console:
            _drain_caption_bus(bus, out, max_items=bus.q.maxsize)

    _log_event(
        logger,
        logging.INFO,
        "replay_start",
        path=str(path),
        format=str(args.format),
        provider=services.settings.provider,
        model=services.settings.model,
        translation_enabled=services.settings.translation_enabled,
    )
    t0 = time.perf_counter()
    try:
        if args.format == "frames":
            fed = await _replay_frames(session, path.read_bytes(), _flush)
        else:
            fed = await _replay_jsonl(session, path, _flush)

        # end of capture closes every open caption
        for caption in session.captions():
            if not caption.is_finalized:
                session.finalize(caption.id)
        await session.drain()
        _flush()

        exported = None
        if args.export:
            exported = export_captions(session.captions(), str(args.export), Path(str(args.export_dir)))
            if exported is not None and args.print_console:
                out(f"Exported: {exported}")
        if services.history is not None:
            services.history.save()
    except Exception as exc:
        session.fail(f"{type(exc).__name__}: {exc}")
        _log_event(logger, logging.ERROR, "replay_failed", path=str(path), error=type(exc).__name__)
        raise
    finally:
        await session.close()

    captions = session.captions()
    metrics = {
        "fed": fed,
        "captions": len(captions),
        "translated": sum(1 for c in captions if c.translation),
        "failed": sum(1 for c in captions if c.translation_status.value == "error"),
        "bus_drops": bus.dropped,
        "exported": str(exported) if exported is not None else None,
        "ms": round((time.perf_counter() - t0) * 1000.0, 2),
    }
    _log_event(logger, logging.INFO, "replay_done", **metrics)
    return metrics


def decode_frame_file(path: Path) -> dict[str, Any] | None:
    data = path.read_bytes()
    # A file may hold a bare record or a single length-prefixed frame.
    record = decode_transcript(data)
    if record is None:
        frames = list(iter_frames(data))
        if len(frames) == 1:
            record = decode_transcript(frames[0])
    return asdict(record) if record is not None else None
