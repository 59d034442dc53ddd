# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/build.py
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence

from ..utils.retry import retry
from .base import ToolAdapter

log = logging.getLogger("qlinstall")


class SourceBuilder(ToolAdapter):
    """Download, unpack and build from source (autotools / make), plus git checkouts."""

    tool = "build"

    @retry(attempts=2, delay=5)
    def download(self, url: str, dest: Path) -> Path:
        dest = Path(dest)
        self._run(["wget", "-q", "-O", str(dest), url])
        return dest

    def extract(self, tarball: Path, into: Path) -> Path:
        """Unpack a .tar.gz into `into`; returns the top-level directory it created."""
        tarball, into = Path(tarball), Path(into)
        self._run(["tar", "-xzf", str(tarball), "-C", str(into)])
        name = tarball.name
        for suffix in (".tar.gz", ".tgz"):
            if name.endswith(suffix):
                name = name[: -len(suffix)]
        return into / name

    def strip_werror(self, src_dir: Path, files: Iterable[str] = ("Makefile.am", "Makefile.in")) -> None:
        """Newer compilers trip libzmq's -Werror; drop the flag from the build files."""
        if self.dry_run:
            return
        for name in files:
            f = Path(src_dir) / name
            if f.exists():
                f.write_text(f.read_text().replace("-Werror", ""))

    def autotools(self, src_dir: Path, configure_args: Sequence[str] = (), env: Optional[Dict[str, str]] = None) -> None:
        cwd = str(src_dir)
        self._run(["./configure", *configure_args], cwd=cwd, env=env)
        self._run(["make"], cwd=cwd, env=env)
        self._run(["make", "install"], cwd=cwd, env=env)
        self._run(["ldconfig"])

    def make(self, src_dir: Path) -> None:
        self._run(["make"], cwd=str(src_dir))

    def clone(self, repo: str, dest: Path) -> Path:
        dest = Path(dest)
        if (dest / ".git").is_dir():
            log.info("git: %s already cloned, pulling", dest)
            self._run(["git", "-C", str(dest), "pull", "--ff-only"])
            return dest
        self._run(["git", "clone", repo, str(dest)])
        return dest

    def copy_tree(self, src: Path, dest: Path) -> None:
        if self.dry_run:
            log.info("dry-run: would copy %s/* to %s", src, dest)
            return
        shutil.copytree(src, dest, dirs_exist_ok=True)

    def chown_tree(self, path: Path, owner: str) -> None:
        self._run(["chown", "-R", f"{owner}:{owner}", str(path)])

    def remove(self, *paths: Path) -> None:
        if self.dry_run:
            return
        for p in paths:
            p = Path(p)
            if p.is_dir():
                shutil.rmtree(p)
            elif p.exists():
                p.unlink()
