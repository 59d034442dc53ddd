import pytest

from qlinstall.deploy.executor import Executor
from qlinstall.deploy.registry import StepRegistry, UnknownDependencyError
from qlinstall.deploy.state import ExecutionState, StateStore
from qlinstall.deploy.steps import Alternative, Condition, ProvisioningStep
from qlinstall.errors import DuplicateStepError, PreconditionFailure, StepFailure, UserAborted
from qlinstall.observers.dispatcher import EventBus
from qlinstall.observers.events import StepFailed, StepSkipped, StepSucceeded


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


class Host:
    """Stand-in for ProvisionContext: records what the steps did."""
    def __init__(self):
        self.calls = []
        self.effects = set()


def _step(name, **kw):
    def apply(ctx):
        ctx.calls.append(name)
        ctx.effects.add(name)
    kw.setdefault("apply", apply)
    return ProvisioningStep(name=name, **kw)


def _boom(ctx):
    raise RuntimeError("boom")


def test_registry_keeps_declared_order_and_rejects_duplicates():
    reg = StepRegistry()
    for n in ("a", "b", "c"):
        reg.register(_step(n))
    assert reg.names() == ["a", "b", "c"]
    assert [s.name for s in reg.ordered()] == ["a", "b", "c"]
    assert reg.get("b").name == "b"
    assert "b" in reg and "z" not in reg
    with pytest.raises(DuplicateStepError):
        reg.register(_step("b"))


def test_registry_rejects_unknown_requirement():
    reg = StepRegistry()
    with pytest.raises(UnknownDependencyError):
        reg.register(_step("b", requires=("a",)))


def test_run_records_every_step_in_order(tmp_path):
    reg = StepRegistry(steps=[_step("a"), _step("b"), _step("c")])
    store = StateStore(tmp_path)
    host, state = Host(), ExecutionState()

    report = Executor(host, store=store).run(reg, state)

    assert host.calls == ["a", "b", "c"]
    assert state.completed == ["a", "b", "c"]
    assert store.load().completed == ["a", "b", "c"]
    assert report.count("OK") == 3


def test_replay_only_runs_the_remaining_suffix(tmp_path):
    reg = StepRegistry(steps=[_step("a"), _step("b"), _step("c"), _step("d")])
    store = StateStore(tmp_path)
    store.record_done("a")
    store.record_done("b")
    host, cap = Host(), Capture()

    Executor(host, store=store, bus=EventBus([cap])).run(reg, store.load())

    assert host.calls == ["c", "d"]
    assert [e.name for e in cap.events if isinstance(e, StepSkipped)] == ["a", "b"]
    assert store.load().completed == ["a", "b", "c", "d"]


def test_non_idempotent_step_reruns_but_is_not_recorded_twice(tmp_path):
    reg = StepRegistry(steps=[_step("check", idempotent=False), _step("b")])
    store = StateStore(tmp_path)
    host = Host()
    Executor(host, store=store).run(reg, store.load())
    Executor(host, store=store).run(reg, store.load())

    assert host.calls == ["check", "b", "check"]
    assert store.load().completed == ["check", "b"]
    assert [r["step"] for r in store.history()] == ["check", "b"]


def test_first_failure_halts_and_records_nothing_for_it(tmp_path):
    reg = StepRegistry(steps=[_step("a"), _step("b", apply=_boom), _step("c")])
    host, state, cap = Host(), ExecutionState(), Capture()

    with pytest.raises(StepFailure) as exc:
        Executor(host, bus=EventBus([cap])).run(reg, state)

    assert exc.value.step == "b"
    assert isinstance(exc.value.cause, RuntimeError)
    assert host.calls == ["a"]
    assert state.completed == ["a"]
    assert [e.name for e in cap.events if isinstance(e, StepFailed)] == ["b"]


def test_false_precondition_is_fatal_and_apply_never_runs():
    never = Condition("disk mounted", lambda ctx: False)
    reg = StepRegistry(steps=[_step("a", preconditions=(never,))])
    host = Host()
    with pytest.raises(PreconditionFailure) as exc:
        Executor(host).run(reg, ExecutionState())
    assert "disk mounted" in str(exc.value)
    assert host.calls == []


def test_raising_precondition_counts_as_false():
    def check(ctx):
        raise OSError("no /etc/os-release")
    reg = StepRegistry(steps=[_step("a", preconditions=(Condition("os known", check),))])
    with pytest.raises(PreconditionFailure):
        Executor(Host()).run(reg, ExecutionState())


def test_failed_postcondition_fails_the_step():
    post = Condition("artifact present", lambda ctx: False)
    reg = StepRegistry(steps=[_step("fetch", postconditions=(post,))])
    state = ExecutionState()
    with pytest.raises(StepFailure):
        Executor(Host()).run(reg, state)
    assert state.completed == []


def test_alternatives_first_fails_second_succeeds():
    cleaned = []

    def a(ctx):
        ctx.effects.add("A-partial")
        raise RuntimeError("A broke")

    def cleanup_a(ctx):
        ctx.effects.discard("A-partial")
        cleaned.append("A")

    def b(ctx):
        ctx.effects.add("B")

    reg = StepRegistry(steps=[
        ProvisioningStep(name="lib", alternatives=(Alternative("A", a, cleanup=cleanup_a), Alternative("B", b))),
    ])
    host, state, cap = Host(), ExecutionState(), Capture()
    report = Executor(host, bus=EventBus([cap])).run(reg, state)

    assert state.completed == ["lib"]
    assert host.effects == {"B"}
    assert cleaned == ["A"]
    assert report.outcomes[0].via == "B"
    ok = next(e for e in cap.events if isinstance(e, StepSucceeded))
    assert ok.via == "B"


def test_alternatives_all_fail_raises_and_records_nothing():
    reg = StepRegistry(steps=[
        ProvisioningStep(name="lib", alternatives=(Alternative("A", _boom), Alternative("B", _boom))),
    ])
    state = ExecutionState()
    with pytest.raises(StepFailure) as exc:
        Executor(Host()).run(reg, state)
    assert "A: boom" in str(exc.value) and "B: boom" in str(exc.value)
    assert state.completed == []


def test_user_aborted_propagates_unwrapped():
    def cancel(ctx):
        raise UserAborted("cancelled", rollback=True)

    reg = StepRegistry(steps=[_step("a"), _step("b", apply=cancel), _step("c")])
    state = ExecutionState()
    with pytest.raises(UserAborted) as exc:
        Executor(Host()).run(reg, state)
    assert exc.value.rollback is True
    assert state.completed == ["a"]


def test_state_store_ignores_torn_last_line(tmp_path):
    store = StateStore(tmp_path)
    store.record_done("a")
    store.record_done("b")
    store.record_undone("b")
    with store.path.open("a") as f:
        f.write('{"op": "done", "st')
    assert store.load().completed == ["a"]


def test_state_store_uses_a_file_per_sequence(tmp_path):
    StateStore(tmp_path).record_done("a")
    StateStore(tmp_path, sequence="supervisor").record_done("x")
    assert (tmp_path / "state.log").exists()
    assert (tmp_path / "supervisor-state.log").exists()
    assert StateStore(tmp_path).load().completed == ["a"]


def test_failing_cleanup_does_not_stop_the_next_alternative():
    def bad_cleanup(ctx):
        raise OSError("tarball already gone")

    reg = StepRegistry(steps=[
        ProvisioningStep(name="lib", alternatives=(
            Alternative("A", _boom, cleanup=bad_cleanup),
            Alternative("B", lambda ctx: ctx.effects.add("B")),
        )),
    ])
    host, state = Host(), ExecutionState()
    report = Executor(host).run(reg, state)

    assert host.effects == {"B"}
    assert report.outcomes[0].via == "B"
    assert state.completed == ["lib"]


def test_dry_run_keeps_state_in_memory_only(tmp_path):
    host = Host()
    host.dry_run = True
    reg = StepRegistry(steps=[_step("a"), _step("b")])
    store = StateStore(tmp_path)
    state = store.load()

    Executor(host, store=store).run(reg, state)

    assert state.completed == ["a", "b"]
    assert not store.path.exists()
    assert store.load().completed == []
