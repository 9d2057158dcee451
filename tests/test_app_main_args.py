from __future__ import annotations

import json
from pathlib import Path

from galtrans.app.config import resolve_args
from galtrans.contracts import ReplacementRule


def test_app_resolve_args_cli_overrides_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("TRANSLATOR_PORT", raising=False)
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(
        json.dumps(
            {
                "translator": "openai",
                "server_port": 18000,
                "poll_ms": 60,
            }
        ),
        encoding="utf-8",
    )
    args = resolve_args(
        [
            "--config",
            str(cfg_path),
            "--translator",
            "stub",
            "--poll-ms",
            "30",
        ]
    )
    assert args.translator == "stub"
    assert args.server_port == 18000
    assert args.poll_ms == 30


def test_app_resolve_args_port_and_toggles(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(
        json.dumps({"monitor_clipboard": True, "openai_compatible_input": False}),
        encoding="utf-8",
    )
    args = resolve_args(
        [
            "--config",
            str(cfg_path),
            "--port",
            "18123",
            "--no-monitor-clipboard",
            "--openai-compatible-input",
        ]
    )
    assert args.server_port == 18123
    assert args.monitor_clipboard is False
    assert args.openai_compatible_input is True


def test_app_resolve_args_provider_settings(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps({"base_url": "http://localhost:8000/v1"}), encoding="utf-8")
    args = resolve_args(
        [
            "--config",
            str(cfg_path),
            "--api-key",
            "sk-abc",
            "--model",
            "qwen",
            "--prompt",
            "翻译成中文",
        ]
    )
    assert args.base_url == "http://localhost:8000/v1"
    assert args.api_key == "sk-abc"
    assert args.model == "qwen"
    assert args.prompt == "翻译成中文"


def test_app_resolve_args_loads_replacements(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(
        json.dumps({"replacements": [{"pattern": "\\n", "replacement": "", "flags": "g"}]}),
        encoding="utf-8",
    )
    args = resolve_args(["--config", str(cfg_path)])
    assert args.replacements == [ReplacementRule(pattern="\\n", replacement="", flags="g")]


def test_app_resolve_args_overlay_controls(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps({"overlay_opacity": 40}), encoding="utf-8")
    args = resolve_args(
        [
            "--config",
            str(cfg_path),
            "--overlay",
            "--overlay-opacity",
            "75",
            "--no-show-original",
            "--data-dir",
            str(tmp_path / "data"),
        ]
    )
    assert args.overlay is True
    assert args.overlay_opacity == 75
    assert args.show_original is False
    assert args.data_dir == str(tmp_path / "data")
