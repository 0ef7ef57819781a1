from __future__ import annotations

import argparse
import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from meetsub.contracts import TranslationSettings
from meetsub.nlp.translator.prompt import DEFAULT_CUSTOM_PROMPT
from meetsub.nlp.translator.service import PROVIDERS

DEFAULTS: dict[str, Any] = {
    "provider": "openai",
    "openai_api_key": "",
    "anthropic_api_key": "",
    "ollama_base_url": "http://localhost:11434",
    "ollama_api_key": "",
    "model": "gpt-4.1-nano",
    "target_language": "en",
    "translation_enabled": False,
    "custom_prompt": DEFAULT_CUSTOM_PROMPT,
    "max_captions": 200,
    "semantic_delay_ms": 1500,
    "optimistic_growth_chars": 20,
    "context_size": 5,
    "lookback": 5,
    "request_timeout_sec": 30.0,
    "history_enabled": True,
    "print_console": True,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())

# Secrets may come from the environment instead of the config file.
ENV_OVERRIDES: dict[str, str] = {
    "openai_api_key": "MEETSUB_OPENAI_API_KEY",
    "anthropic_api_key": "MEETSUB_ANTHROPIC_API_KEY",
    "ollama_api_key": "MEETSUB_OLLAMA_API_KEY",
}


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path
    history_path: Path


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("MeetSub", "MeetSub"))
    return AppPaths(
        config_dir=config_dir,
        config_path=config_dir / "config.json",
        history_path=config_dir / "history.json",
    )


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in CONFIG_KEYS:
        if key in payload:
            out[key] = payload[key]
    return out


def _apply_env(values: dict[str, Any]) -> dict[str, Any]:
    out = dict(values)
    for key, env_name in ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value:
            out[key] = env_value
    return out


def load_default_config() -> dict[str, Any]:
    return copy.deepcopy(DEFAULTS)


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    merged = dict(defaults)
    merged.update(_known_only(_load_json_dict(chosen)))
    return _apply_env(merged), chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    payload = _known_only(values)
    if config_path:
        path = Path(config_path)
        existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    else:
        path = ensure_user_config_exists()
        existing = _known_only(_load_json_dict(path))
    merged = load_default_config()
    merged.update(existing)
    merged.update(payload)
    _write_json_dict(path, _known_only(merged))
    return path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="meetsub")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--provider", default=defaults["provider"], choices=list(PROVIDERS), help="translation provider")
    p.add_argument("--model", default=defaults["model"], help="preferred model")
    p.add_argument("--ollama-base-url", default=defaults["ollama_base_url"], help="Ollama server URL")
    p.add_argument("--target-language", default=defaults["target_language"], help="target language code")
    p.add_argument(
        "--translation-enabled",
        action=argparse.BooleanOptionalAction,
        default=defaults["translation_enabled"],
        help="translate captions automatically",
    )
    p.add_argument("--custom-prompt", default=defaults["custom_prompt"], help="extra instructions for the model")
    p.add_argument("--max-captions", type=int, default=defaults["max_captions"], help="captions kept in memory")
    p.add_argument(
        "--semantic-delay-ms",
        type=int,
        default=defaults["semantic_delay_ms"],
        help="quiet period before a full-context retranslation",
    )
    p.add_argument(
        "--optimistic-growth-chars",
        type=int,
        default=defaults["optimistic_growth_chars"],
        help="growth that triggers an immediate rough translation",
    )
    p.add_argument("--context-size", type=int, default=defaults["context_size"], help="preceding captions sent as context")
    p.add_argument("--lookback", type=int, default=defaults["lookback"], help="captions scanned for continuations")
    p.add_argument(
        "--request-timeout-sec",
        type=float,
        default=defaults["request_timeout_sec"],
        help="HTTP timeout per provider request",
    )
    p.add_argument(
        "--history-enabled",
        action=argparse.BooleanOptionalAction,
        default=defaults["history_enabled"],
        help="save the meeting to the history file",
    )
    p.add_argument(
        "--print-console",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_console"],
        help="print caption updates to console",
    )

    sub = p.add_subparsers(dest="command", required=True)
    replay = sub.add_parser("replay", help="replay a capture through a caption session")
    replay.add_argument("path", help="capture file")
    replay.add_argument("--format", choices=["frames", "jsonl"], default="jsonl", help="capture file format")
    replay.add_argument("--export", choices=["captions", "translations", "both"], default=None)
    replay.add_argument("--export-dir", default=".", help="directory for exported text")
    decode = sub.add_parser("decode", help="decode one raw transcript frame")
    decode.add_argument("path", help="file holding one frame")
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    # Keys are never taken from the command line.
    for key in ENV_OVERRIDES:
        setattr(args, key, defaults.get(key, ""))
    return args


def settings_from_args(args: argparse.Namespace) -> TranslationSettings:
    return TranslationSettings(
        provider=str(args.provider),
        openai_api_key=str(getattr(args, "openai_api_key", "") or ""),
        anthropic_api_key=str(getattr(args, "anthropic_api_key", "") or ""),
        ollama_base_url=str(args.ollama_base_url or ""),
        ollama_api_key=str(getattr(args, "ollama_api_key", "") or ""),
        model=str(args.model),
        target_language=str(args.target_language),
        translation_enabled=bool(args.translation_enabled),
        custom_prompt=str(args.custom_prompt or ""),
    )
