from __future__ import annotations

_SKIP_PREFIXES = ("File ", "^", "Traceback ", "During handling", "The above exception")


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown runtime error."
    for ln in reversed(lines):
        if ln.startswith(_SKIP_PREFIXES):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "invalid api key" in s or "api key not configured" in s or "api key required" in s:
        return "Provider rejected or lacks an API key. Set it in config.json or the MEETSUB_*_API_KEY variable."
    if "rate limit" in s:
        return "Provider is rate limiting this key. Wait a bit or pick a different model."
    if "connection refused" in s or "connecterror" in s or "service temporarily unavailable" in s:
        return "Translation service unreachable. Check that Ollama is running or that the network is up."
    if "no module named" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    if "no such file or directory" in s:
        return "Input capture file is missing. Check the path passed on the command line."
    return "Check logs for full traceback."
