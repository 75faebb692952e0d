"""Tests for the one-shot CLI check."""

from __future__ import annotations

from pathlib import Path

from switchboard import main
from switchboard.config import settings


class TestRunCheck:
    def test_fast_check_prints_report(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.setattr(settings, "db_path", str(tmp_path / "switchboard.db"))
        monkeypatch.setattr(settings, "ami_username", "")
        monkeypatch.setattr(settings, "cpu_sample_seconds", 0.0)

        code = main.run_check(fast=True)

        out = capsys.readouterr().out
        for name in ("asterisk", "database", "websocket", "backend"):
            assert name in out
        # Gateway disabled means the asterisk probe is unhealthy
        assert code == 2
