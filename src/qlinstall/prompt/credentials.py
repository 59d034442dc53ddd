# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Credentials:
    """
    Secrets gathered during a run. Lives in memory only; nothing in the
    installer writes these to disk in plain form, and repr() hides them.
    """
    service_password: Optional[str] = field(default=None, repr=False)
    steam_username: Optional[str] = None
    steam_password: Optional[str] = field(default=None, repr=False)
    ssh_public_key: Optional[str] = field(default=None, repr=False)

    def clear_steam(self) -> None:
        self.steam_username = None
        self.steam_password = None

    def wipe(self) -> None:
        self.service_password = None
        self.clear_steam()
        self.ssh_public_key = None
