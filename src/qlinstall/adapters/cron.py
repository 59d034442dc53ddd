# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/cron.py
from __future__ import annotations

from typing import List, Tuple

from .base import ToolAdapter

REBOOT_MARKER = "/sbin/shutdown -r"


def parse_hhmm(value: str) -> Tuple[int, int]:
    """'06:40' or '06 40' -> (6, 40). Raises ValueError outside 00:00-23:59."""
    text = value.strip().replace(":", " ")
    parts = text.split()
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"expected HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time out of range: {value!r}")
    return hour, minute


class CronAdapter(ToolAdapter):
    """root's crontab, edited through `crontab -l` / `crontab -`."""

    tool = "crontab"

    def read(self) -> List[str]:
        cp = self.runner.run(["crontab", "-l"], mutating=False)
        # rc 1 with "no crontab for root" is an empty table
        if cp.returncode != 0:
            return []
        return [ln for ln in (cp.stdout or "").splitlines() if ln.strip()]

    def _write(self, lines: List[str]) -> None:
        self._run(["crontab", "-"], input="\n".join(lines) + "\n" if lines else "")

    def set_daily_reboot(self, hour: int, minute: int, command: str = "/sbin/shutdown -r now") -> str:
        entry = f"{minute} {hour} * * * {command}"
        lines = [ln for ln in self.read() if REBOOT_MARKER not in ln]
        lines.append(entry)
        self._write(lines)
        return entry

    def clear_daily_reboot(self) -> bool:
        lines = self.read()
        kept = [ln for ln in lines if REBOOT_MARKER not in ln]
        if len(kept) == len(lines):
            return False
        self._write(kept)
        return True
