from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from meetsub.app import config as app_config
from meetsub.app.main import main
from meetsub.app.runtime import _drain_caption_bus, decode_frame_file, format_event, run_replay
from meetsub.captions.store import CaptionStore
from meetsub.contracts import TranslationRequest, TranslationResult
from meetsub.nlp.translator.base import Translator
from meetsub.ui.bridge import CaptionEvent, CaptionEventBus
from meetsub.wire.frames import encode_frame


class _UpperTranslator(Translator):
    @property
    def name(self) -> str:
        return "upper"

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        return TranslationResult(success=True, translation=req.text.upper())


def _event(text: str, event: str = "created", **kw) -> CaptionEvent:
    fields = dict(
        event=event,
        caption_id=1,
        speaker="Alice",
        text=text,
        time="10:00:00",
        translation="",
        status="pending",
    )
    fields.update(kw)
    return CaptionEvent(**fields)


def _ld(field: int, payload: bytes) -> bytes:
    assert len(payload) < 128
    return bytes([(field << 3) | 2, len(payload)]) + payload


def test_caption_bus_drops_oldest_when_full() -> None:
    bus = CaptionEventBus(maxsize=2)
    for text in ("one", "two", "three"):
        bus.push(_event(text))

    first = bus.pop()
    second = bus.pop()
    assert first is not None and first.text == "two"
    assert second is not None and second.text == "three"
    assert bus.pop() is None
    assert bus.dropped == 1


def test_caption_bus_listener_snapshots_caption() -> None:
    store = CaptionStore()
    caption = store.get(store.append("Bob", "hello"))
    assert caption is not None
    bus = CaptionEventBus()
    bus.listener(caption, "created")
    caption.text = "changed later"

    ev = bus.pop()
    assert ev is not None
    assert (ev.caption_id, ev.speaker, ev.text, ev.status) == (1, "Bob", "hello", "pending")


def test_drain_caption_bus_respects_max_items() -> None:
    bus = CaptionEventBus(maxsize=10)
    out: list[str] = []
    for i in range(4):
        bus.push(_event(f"line-{i}"))
    assert _drain_caption_bus(bus, out.append, max_items=3) == 3
    assert out == [f"[10:00:00] Alice: line-{i}" for i in range(3)]


def test_format_event_variants() -> None:
    assert format_event(_event("hi", "finalized")) == "[10:00:00]*Alice: hi"
    assert format_event(_event("hi", "translation", status="translating")) is None
    assert format_event(_event("hi", "translation", status="semantic", translation="HI")) == (
        "[10:00:00]  -> (semantic) HI"
    )
    assert format_event(_event("hi", "translation", status="error", error="Invalid API key")) == (
        "[10:00:00]  !! Invalid API key"
    )


@pytest.mark.asyncio
async def test_run_replay_jsonl_translates_and_exports(tmp_path: Path) -> None:
    capture = tmp_path / "meeting.jsonl"
    lines = [
        {"speaker": "Alice", "text": "I think we should"},
        {"speaker": "Alice", "text": "I think we should ship it"},
        {"speaker": "Alice", "text": "I think we"},
        {"speaker": "Bob", "text": "Agreed.", "final": True},
    ]
    capture.write_text(
        "# captured fragments\n" + "\n".join(json.dumps(x) for x in lines) + "\n",
        encoding="utf-8",
    )
    args = app_config.resolve_args(
        [
            "--config",
            str(_write_cfg(tmp_path)),
            "--translation-enabled",
            "replay",
            str(capture),
            "--export",
            "both",
            "--export-dir",
            str(tmp_path / "out"),
        ]
    )
    out: list[str] = []
    history_path = tmp_path / "history.json"

    metrics = await run_replay(args, translator=_UpperTranslator(), history_path=history_path, out=out.append)

    assert metrics["fed"] == 4
    assert metrics["captions"] == 2
    assert metrics["translated"] == 2
    assert metrics["failed"] == 0
    exported = Path(metrics["exported"])
    text = exported.read_text(encoding="utf-8")
    assert "Original: I think we should ship it" in text
    assert "Translation: I THINK WE SHOULD SHIP IT" in text
    assert any(line.endswith("Alice: I think we should") for line in out)

    sessions = json.loads(history_path.read_text(encoding="utf-8"))
    assert sessions[0]["title"] == "meeting.jsonl"
    assert [c["text"] for c in sessions[0]["captions"]] == ["I think we should ship it", "Agreed."]


@pytest.mark.asyncio
async def test_run_replay_frames_without_translation(tmp_path: Path) -> None:
    capture = tmp_path / "meeting.bin"
    speaker = _ld(2, b"Alice")
    frames = [
        _ld(1, _ld(2, speaker) + _ld(3, b"hello")),
        _ld(1, _ld(2, speaker) + _ld(3, b"hello world") + bytes([0x28, 0x01])),
    ]
    capture.write_bytes(b"".join(encode_frame(f) for f in frames) + b"\x05\x01")
    args = app_config.resolve_args(
        ["--config", str(_write_cfg(tmp_path)), "--no-history-enabled", "replay", str(capture), "--format", "frames"]
    )
    out: list[str] = []

    metrics = await run_replay(args, translator=_UpperTranslator(), out=out.append)

    assert metrics["fed"] == 2
    assert metrics["captions"] == 1
    assert metrics["translated"] == 0
    assert not any("->" in line for line in out)
    assert any("*Alice: hello world" in line for line in out)


@pytest.mark.asyncio
async def test_run_replay_malformed_line_logs_failure(tmp_path: Path, caplog) -> None:
    capture = tmp_path / "broken.jsonl"
    capture.write_text('{"speaker": "Alice", "text": "hello"}\n{not json\n', encoding="utf-8")
    args = app_config.resolve_args(
        ["--config", str(_write_cfg(tmp_path)), "--no-history-enabled", "replay", str(capture)]
    )
    caplog.set_level(logging.INFO, logger="replay-test")

    with pytest.raises(json.JSONDecodeError):
        await run_replay(args, logging.getLogger("replay-test"), translator=_UpperTranslator(), out=lambda _: None)

    failed = [r for r in caplog.records if r.getMessage() == "replay_failed"]
    assert len(failed) == 1
    assert failed[0].error == "JSONDecodeError"


def test_decode_frame_file_bare_and_framed(tmp_path: Path) -> None:
    record = _ld(1, _ld(3, b"hello") + bytes([0x28, 0x01]))
    bare = tmp_path / "bare.bin"
    bare.write_bytes(record)
    framed = tmp_path / "framed.bin"
    framed.write_bytes(encode_frame(record))

    for path in (bare, framed):
        decoded = decode_frame_file(path)
        assert decoded is not None
        assert decoded["text"] == "hello"
        assert decoded["is_final"] is True


def test_main_decode_prints_json(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    frame = tmp_path / "frame.bin"
    frame.write_bytes(_ld(1, _ld(3, b"hola")))

    assert main(["decode", str(frame)]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["text"] == "hola"
    assert (tmp_path / "config.json").exists()


def test_main_reports_failures_with_hint(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))

    assert main(["replay", str(tmp_path / "missing.jsonl")]) == 1
    out = capsys.readouterr().out
    assert "Error: FileNotFoundError" in out
    assert "Hint: Input capture file is missing." in out


def _write_cfg(tmp_path: Path) -> Path:
    cfg = tmp_path / "config.json"
    cfg.write_text(json.dumps({"semantic_delay_ms": 10, "print_console": True}), encoding="utf-8")
    return cfg
