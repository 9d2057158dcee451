from __future__ import annotations

import argparse
import copy
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

from galtrans.contracts import ReplacementRule
from galtrans.store.cache import CACHE_FILENAME

logger = logging.getLogger(__name__)

APP_NAME = "galtrans"
DEFAULT_PORT = 17889
DEFAULT_PROMPT = (
    "你是一个 Galgame 文本翻译助手，请将原文翻译为简洁、流畅的中文对白，保留原有格式与人名。"
)

DEFAULTS: dict[str, Any] = {
    "translator": "openai",
    "base_url": "https://api.openai.com",
    "api_key": "",
    "model": "gpt-4o-mini",
    "prompt": DEFAULT_PROMPT,
    "server_port": DEFAULT_PORT,
    "monitor_clipboard": False,
    "clipboard_poll_sec": 1.5,
    "openai_compatible_input": False,
    "replacements": [],
    "print_console": True,
    "overlay": False,
    "show_original": True,
    "max_lines": 4,
    "font_size": 18,
    "overlay_opacity": 66,
    "poll_ms": 60,
    "queue_maxsize": 100,
    "data_dir": None,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path
    data_dir: Path
    cache_path: Path
    history_path: Path
    log_dir: Path


def app_paths(data_dir: str | None = None) -> AppPaths:
    config_dir = Path(user_config_dir(APP_NAME, APP_NAME))
    data = Path(data_dir) if data_dir else Path(user_data_dir(APP_NAME, APP_NAME))
    return AppPaths(
        config_dir=config_dir,
        config_path=config_dir / "config.json",
        data_dir=data,
        cache_path=data / "cache" / CACHE_FILENAME,
        history_path=data / "history.jsonl",
        log_dir=config_dir / "logs",
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
    return {key: payload[key] for key in CONFIG_KEYS if key in payload}


def load_default_config() -> dict[str, Any]:
    return copy.deepcopy(DEFAULTS)


def read_port_from_env(default: int = DEFAULT_PORT) -> int:
    raw = os.getenv("TRANSLATOR_PORT", "").strip()
    try:
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


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
    return merged, chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    payload = _known_only(values)
    defaults = load_default_config()
    if config_path:
        path = Path(config_path)
        existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    else:
        path = ensure_user_config_exists(defaults)
        existing = _known_only(_load_json_dict(path))
    merged = dict(defaults)
    merged.update(existing)
    merged.update(payload)
    _write_json_dict(path, _known_only(merged))
    return path


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def rules_from_config(raw: Any) -> list[ReplacementRule]:
    """Malformed entries are dropped; regex validity is checked at apply time."""
    if not isinstance(raw, list):
        return []
    rules: list[ReplacementRule] = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("replacement_rule_malformed", extra={"rule": repr(item)[:200]})
            continue
        pattern = item.get("pattern")
        if not isinstance(pattern, str) or not pattern.strip():
            continue
        replacement = item.get("replacement", "")
        flags = item.get("flags", "")
        rules.append(
            ReplacementRule(
                pattern=pattern,
                replacement=replacement if isinstance(replacement, str) else str(replacement),
                flags=flags if isinstance(flags, str) else "",
            )
        )
    return rules


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults, used = load_user_config(config_path=config_path)
    defaults["server_port"] = read_port_from_env(defaults["server_port"])
    return defaults, used


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="galtrans")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument(
        "--translator",
        default=defaults["translator"],
        choices=["openai", "stub"],
        help="completion backend",
    )
    p.add_argument("--base-url", default=defaults["base_url"], help="OpenAI-compatible provider base URL")
    p.add_argument("--api-key", default=defaults["api_key"], help="provider credential")
    p.add_argument("--model", default=defaults["model"], help="model identifier")
    p.add_argument("--prompt", default=defaults["prompt"], help="system prompt prepended to every request")
    p.add_argument(
        "--port",
        dest="server_port",
        type=int,
        default=defaults["server_port"],
        help="local HTTP listener port",
    )
    p.add_argument(
        "--monitor-clipboard",
        action=argparse.BooleanOptionalAction,
        default=defaults["monitor_clipboard"],
        help="forward changed clipboard text",
    )
    p.add_argument(
        "--clipboard-poll-sec",
        type=float,
        default=defaults["clipboard_poll_sec"],
        help="clipboard sampling interval (seconds)",
    )
    p.add_argument(
        "--openai-compatible-input",
        action=argparse.BooleanOptionalAction,
        default=defaults["openai_compatible_input"],
        help="accept POST /v1/chat/completions as an input source",
    )
    p.add_argument(
        "--print-console",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_console"],
        help="print completed translations to console",
    )
    p.add_argument(
        "--overlay",
        action=argparse.BooleanOptionalAction,
        default=defaults["overlay"],
        help="show the PyQt6 overlay window",
    )
    p.add_argument(
        "--show-original",
        action=argparse.BooleanOptionalAction,
        default=defaults["show_original"],
        help="show/hide source line in overlay",
    )
    p.add_argument("--max-lines", type=int, default=defaults["max_lines"], help="visible overlay lines")
    p.add_argument("--font-size", type=int, default=defaults["font_size"], help="overlay font size")
    p.add_argument(
        "--overlay-opacity",
        type=int,
        default=defaults["overlay_opacity"],
        help="overlay background opacity (0-100)",
    )
    p.add_argument("--poll-ms", type=int, default=defaults["poll_ms"], help="UI queue poll interval (ms)")
    p.add_argument(
        "--queue-maxsize",
        type=int,
        default=defaults["queue_maxsize"],
        help="max updates buffered between worker threads and UI",
    )
    p.add_argument("--data-dir", default=defaults["data_dir"], help="cache/history directory override")
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    args.replacements = rules_from_config(defaults.get("replacements"))
    return args
