from __future__ import annotations


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown error."
    for ln in reversed(lines):
        if ln.startswith("File "):
            continue
        if ln.startswith("^"):
            continue
        if ln.startswith("Traceback "):
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
    if "api key is not configured" in s:
        return "Set api_key in the config file (or pass --api-key) and submit the text again."
    if "address already in use" in s or "winerror 10048" in s or "errno 98" in s:
        return "Another program is using this port. Pick a different server_port and save the config."
    if "permission denied" in s or "winerror 10013" in s:
        return "The OS refused the port. Use a port above 1024 that is not reserved."
    if "invalid port" in s:
        return "server_port must be an integer between 0 and 65535 (0 picks any free port)."
    if "401" in s or "invalid api key" in s or "incorrect api key" in s:
        return "The provider rejected the API key. Check api_key and base_url."
    if "404" in s and "model" in s:
        return "The provider does not know this model. Check the model setting."
    if "connection" in s and ("refused" in s or "error" in s):
        return "Could not reach the provider. Check base_url and your network."
    return "Check logs for full traceback."
