import logging
import os
import stat
import uuid

import pytest

from qlinstall.logging.log import init_logging, prune_logs


@pytest.fixture(autouse=True)
def detach_handlers():
    yield
    logger = logging.getLogger("qlinstall")
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.propagate = True


def test_log_file_is_private_and_named_after_run(tmp_path):
    logger, run_id, path = init_logging(base_dir=tmp_path / "logs")
    logger.info("hello")
    for h in logger.handlers:
        h.flush()

    assert path.parent == tmp_path / "logs"
    assert path.name.endswith(f"-{run_id}.log")
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert "| INFO    | hello" in path.read_text()


def test_repeated_init_does_not_stack_handlers(tmp_path):
    init_logging(base_dir=tmp_path)
    logger, _, _ = init_logging(base_dir=tmp_path)
    assert len(logger.handlers) == 2


def test_prune_keeps_newest_runs_and_their_events(tmp_path):
    ids = [str(uuid.uuid4()) for _ in range(4)]
    for age, run_id in enumerate(ids):
        log = tmp_path / f"qlinstall-20261001-00000{age}-{run_id}.log"
        log.write_text("x")
        (tmp_path / f"{run_id}.jsonl").write_text("{}")
        os.utime(log, (1_000_000 - age * 100, 1_000_000 - age * 100))

    removed = prune_logs(tmp_path, keep=2)

    assert len(removed) == 4
    left = sorted(p.name for p in tmp_path.iterdir())
    assert left == sorted(
        [f"qlinstall-20261001-000000-{ids[0]}.log", f"{ids[0]}.jsonl",
         f"qlinstall-20261001-000001-{ids[1]}.log", f"{ids[1]}.jsonl"]
    )
