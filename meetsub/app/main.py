from __future__ import annotations

import asyncio
import json
import traceback
from pathlib import Path

from meetsub.app.config import resolve_args
from meetsub.app.diagnostics import hint_for_exception, summarize_exception
from meetsub.app.logging_setup import setup_app_logger
from meetsub.app.runtime import decode_frame_file, run_replay


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, _, log_path = setup_app_logger()
    logger.info(
        "app_start",
        extra={"command": args.command, "config_path": str(getattr(args, "config", "")), "argv": argv or []},
    )

    try:
        if args.command == "decode":
            record = decode_frame_file(Path(args.path))
            if record is None:
                print("No transcript record could be decoded.")
                logger.warning("decode_empty", extra={"path": str(args.path)})
                return 1
            print(json.dumps(record, ensure_ascii=False, indent=2))
            return 0

        metrics = asyncio.run(run_replay(args, logger))
        if args.print_console:
            print(
                f"Replayed {metrics['fed']} fragments into {metrics['captions']} captions "
                f"({metrics['translated']} translated, {metrics['failed']} failed)."
            )
        return 0
    except KeyboardInterrupt:
        logger.info("app_keyboard_interrupt")
        return 1
    except Exception:
        detail = traceback.format_exc()
        logger.exception("app_crash", extra={"command": args.command})
        summary = summarize_exception(detail)
        print(f"Error: {summary}")
        print(f"Hint: {hint_for_exception(summary)}")
        print(f"Logs: {log_path}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
