# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/logging/log.py

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_LOG_DIR = Path("/var/lib/qlinstall/logs")
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
KEEP_RUNS = 20


def prune_logs(base_dir: Path, name: str = "qlinstall", keep: int = KEEP_RUNS) -> list[Path]:
    """Delete all but the newest `keep` run logs (and their .jsonl twins)."""
    runs = sorted(base_dir.glob(f"{name}-*.log"), key=lambda p: p.stat().st_mtime, reverse=True)
    removed = []
    for old in runs[keep:]:
        # <name>-<date>-<time>-<uuid4>; the uuid itself has five dash-separated groups
        run_id = "-".join(old.stem.split("-")[-5:])
        events = base_dir / f"{run_id}.jsonl"
        for p in (old, events):
            if p.exists():
                p.unlink()
                removed.append(p)
    return removed


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "qlinstall",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per invocation, readable by root only: commands, hostnames
    and usernames end up in it even though secrets are masked.

    Sets up:
      - file handler, full DEBUG trace
      - console handler, INFO (DEBUG with --debug)
    Returns (logger, run_id, log_path); observers reuse the run_id.
    """
    run_id = str(uuid.uuid4())
    base_dir = base_dir or DEFAULT_LOG_DIR
    base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"
    log_path.touch(mode=0o600)
    os.chmod(log_path, 0o600)

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("=== qlinstall run started ===")
    logger.debug("run_id=%s log_file=%s", run_id, log_path)
    for old in prune_logs(base_dir, name):
        logger.debug("pruned old log %s", old)

    return logger, run_id, log_path
