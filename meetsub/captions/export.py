from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from meetsub.captions.store import Caption

logger = logging.getLogger(__name__)

EXPORT_KINDS = ("captions", "translations", "both")

_FILENAME_PREFIX = {
    "captions": "captions",
    "translations": "translations",
    "both": "captions_translations",
}


def format_captions_only(captions: Sequence[Caption]) -> str:
    return "\n".join(f"[{c.time_label}] {c.speaker}: {c.text}" for c in captions)


def format_translations_only(captions: Sequence[Caption]) -> str:
    return "\n".join(
        f"[{c.time_label}] {c.speaker}: {c.translation}" for c in captions if c.translation
    )


def format_both(captions: Sequence[Caption]) -> str:
    blocks = []
    for c in captions:
        block = f"[{c.time_label}] {c.speaker}:\n  Original: {c.text}"
        if c.translation:
            block += f"\n  Translation: {c.translation}"
        blocks.append(block)
    return "\n\n".join(blocks)


def export_filename(kind: str, now: Optional[datetime] = None) -> str:
    if kind not in _FILENAME_PREFIX:
        raise ValueError(f"Unknown export kind: {kind}")
    stamp = (now or datetime.now()).strftime("%Y%m%dT%H%M%S")
    return f"{_FILENAME_PREFIX[kind]}_{stamp}.txt"


def render_export(captions: Sequence[Caption], kind: str) -> str:
    if kind == "captions":
        return format_captions_only(captions)
    if kind == "translations":
        return format_translations_only(captions)
    if kind == "both":
        return format_both(captions)
    raise ValueError(f"Unknown export kind: {kind}")


def export_captions(
    captions: Sequence[Caption],
    kind: str,
    directory: str | Path,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    content = render_export(captions, kind)
    if not content:
        logger.info("export_skipped_empty", extra={"kind": kind})
        return None
    path = Path(directory) / export_filename(kind, now)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content + "\n", encoding="utf-8")
    logger.info("export_written", extra={"kind": kind, "path": str(path), "captions": len(captions)})
    return path
