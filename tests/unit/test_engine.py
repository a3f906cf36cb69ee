"""Tests for the workflow engine."""

import asyncio
import time
from types import SimpleNamespace

import pytest

from trustflow.access import AccessGate
from trustflow.auth import Session
from trustflow.config import AutosaveConfig, EngineConfig, TrustflowConfig
from trustflow.contracts import ViewKind
from trustflow.engine import UnimplementedStepScreen, WorkflowEngine
from trustflow.exceptions import PersistenceError, TrustflowError, UnimplementedStepError
from trustflow.persistence import (
    InMemoryWorkflowRepository,
    Order,
    ProgressRecord,
    SQLiteWorkflowRepository,
)
from trustflow.registry import StepDefinition, StepRegistry, WorkflowDefinition
from trustflow.steps import StepImplementationRegistry


class RecordingStep:
    def __init__(self):
        self.rendered = []

    def render(self, current_data, on_advance, on_retreat):
        self.rendered.append(current_data)
        return SimpleNamespace(data=current_data, advance=on_advance, retreat=on_retreat)


class FlakyRepository(InMemoryWorkflowRepository):
    def __init__(self):
        super().__init__()
        self.fail_progress = False
        self.fail_payloads = False
        self.fail_reads = False

    async def get_progress(self, user_id, workflow_id):
        if self.fail_reads:
            raise ConnectionError("store unreachable")
        return await super().get_progress(user_id, workflow_id)

    async def save_progress(self, record):
        if self.fail_progress:
            raise ConnectionError("write rejected")
        await super().save_progress(record)

    async def upsert_step_payload(self, user_id, workflow_id, step_key, payload):
        if self.fail_payloads:
            raise ConnectionError("write rejected")
        await super().upsert_step_payload(user_id, workflow_id, step_key, payload)


class SlowSQLiteRepository(SQLiteWorkflowRepository):
    def _execute(self, query, *params):
        time.sleep(0.1)
        return super()._execute(query, *params)


def _registry(step_ids=("a", "b", "c")) -> StepRegistry:
    steps = [
        StepDefinition(id=step_id, display_name=step_id.upper(), order=i)
        for i, step_id in enumerate(step_ids)
    ]
    return StepRegistry([WorkflowDefinition(id="wf", title="Test workflow", steps=steps)])


def _engine(
    repo=None,
    implemented=("a", "b", "c"),
    step_ids=("a", "b", "c"),
    user_id="u1",
    strategy="id",
    strict=False,
    **kwargs,
) -> WorkflowEngine:
    implementations = StepImplementationRegistry(
        {component: RecordingStep() for component in implemented}
    )
    return WorkflowEngine(
        "wf",
        Session(user_id=user_id),
        _registry(step_ids),
        repo or InMemoryWorkflowRepository(),
        implementations=implementations,
        config=EngineConfig(step_key_strategy=strategy, strict_steps=strict),
        autosave=AutosaveConfig(debounce_seconds=0.02),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_three_step_walkthrough_with_positional_keys():
    repo = InMemoryWorkflowRepository()
    engine = _engine(repo, strategy="position")
    view = await engine.load()
    assert view.kind == ViewKind.IN_PROGRESS
    assert view.position == 1

    await engine.advance({"foo": 1})
    assert engine.record.current_step == 2
    assert engine.record.completed_steps == {1}
    assert await repo.get_step_payloads("u1", "wf") == {"step_1": {"foo": 1}}

    await engine.retreat()
    assert engine.record.current_step == 1
    assert engine.record.completed_steps == {1}

    for _ in range(3):
        await engine.advance()
    record = engine.record
    assert record.current_step == 4
    assert record.completed_steps == {1, 2, 3}
    assert record.is_complete
    assert engine.view().kind == ViewKind.COMPLETE

    stored = await repo.get_progress("u1", "wf")
    assert stored.current_step == 4
    assert stored.is_complete


@pytest.mark.asyncio
async def test_payloads_keyed_by_step_id_by_default():
    repo = InMemoryWorkflowRepository()
    engine = _engine(repo)
    await engine.load()

    await engine.advance({"foo": 1})
    view = await engine.advance({"bar": 2})

    assert await repo.get_step_payloads("u1", "wf") == {"a": {"foo": 1}, "b": {"bar": 2}}
    assert view.step_key == "c"


@pytest.mark.asyncio
async def test_advance_on_complete_workflow_is_noop():
    completions = []
    engine = _engine(implemented=("a",), step_ids=("a",), on_complete=completions.append)
    await engine.load()

    await engine.advance()
    await engine.advance()

    assert engine.record.current_step == 2
    assert len(completions) == 1
    assert completions[0].is_complete


@pytest.mark.asyncio
async def test_async_completion_callback_is_awaited():
    done = asyncio.Event()

    async def on_complete(record):
        done.set()

    engine = _engine(implemented=("a",), step_ids=("a",), on_complete=on_complete)
    await engine.load()
    await engine.advance()
    assert done.is_set()


@pytest.mark.asyncio
async def test_retreat_on_first_step_is_noop():
    repo = InMemoryWorkflowRepository()
    engine = _engine(repo)
    await engine.load()
    view = await engine.retreat()
    assert view.position == 1
    assert view.can_retreat is False
    assert await repo.get_progress("u1", "wf") is None


@pytest.mark.asyncio
async def test_failed_progress_save_leaves_record_unchanged():
    repo = FlakyRepository()
    engine = _engine(repo)
    await engine.load()

    repo.fail_progress = True
    with pytest.raises(PersistenceError):
        await engine.advance({"foo": 1})

    assert engine.record.current_step == 1
    assert engine.record.completed_steps == set()
    assert "could not be saved" in engine.last_error

    repo.fail_progress = False
    await engine.advance({"foo": 1})
    assert engine.record.current_step == 2
    assert engine.last_error is None


@pytest.mark.asyncio
async def test_failed_payload_write_does_not_move_pointer():
    repo = FlakyRepository()
    engine = _engine(repo)
    await engine.load()

    repo.fail_payloads = True
    with pytest.raises(PersistenceError):
        await engine.advance({"foo": 1})

    assert engine.record.current_step == 1
    assert await repo.get_progress("u1", "wf") is None


@pytest.mark.asyncio
async def test_pending_edits_block_advance_when_their_write_fails():
    repo = FlakyRepository()
    engine = _engine(repo)
    await engine.load()

    await engine.update_step_data("a", {"draft": 1})
    repo.fail_payloads = True
    with pytest.raises(PersistenceError):
        await engine.advance()

    assert engine.record.current_step == 1
    assert engine.record.completed_steps == set()
    assert await repo.get_progress("u1", "wf") is None

    repo.fail_payloads = False
    await engine.advance()
    assert engine.record.current_step == 2
    assert await repo.get_step_payloads("u1", "wf") == {"a": {"draft": 1}}
    await engine.close()


@pytest.mark.asyncio
async def test_advance_stores_edits_whose_autosave_failed():
    repo = FlakyRepository()
    errors = []
    engine = _engine(repo, on_autosave_error=lambda key, exc: errors.append(key))
    await engine.load()

    repo.fail_payloads = True
    await engine.update_step_data("a", {"draft": 1})
    await asyncio.sleep(0.1)
    assert errors == ["a"]

    repo.fail_payloads = False
    await engine.advance()
    assert engine.record.current_step == 2
    assert await repo.get_step_payloads("u1", "wf") == {"a": {"draft": 1}}
    await engine.close()


@pytest.mark.asyncio
async def test_failed_write_through_is_not_applied():
    repo = FlakyRepository()
    engine = WorkflowEngine(
        "wf",
        Session(user_id="u1"),
        _registry(),
        repo,
        autosave=AutosaveConfig(enabled=False),
    )
    await engine.load()

    repo.fail_payloads = True
    with pytest.raises(PersistenceError):
        await engine.update_step_data("a", {"x": 1})

    assert engine.record.step_data == {}
    assert engine.view().data is None


@pytest.mark.asyncio
async def test_slow_sqlite_commit_keeps_engine_and_store_in_step(tmp_path):
    repo = SlowSQLiteRepository(tmp_path / "wf.db")
    engine = _engine(repo, timeout=0.01)
    await engine.load()

    await engine.advance({"foo": 1})

    assert engine.record.current_step == 2
    assert (await repo.get_progress("u1", "wf")).current_step == 2
    await engine.close()


@pytest.mark.asyncio
async def test_failed_retreat_leaves_record_unchanged():
    repo = FlakyRepository()
    engine = _engine(repo)
    await engine.load()
    await engine.advance()

    repo.fail_progress = True
    with pytest.raises(PersistenceError):
        await engine.retreat()
    assert engine.record.current_step == 2


@pytest.mark.asyncio
async def test_load_failure_shows_error_without_record():
    repo = FlakyRepository()
    repo.fail_reads = True
    engine = _engine(repo)

    view = await engine.load()

    assert view.kind == ViewKind.ERROR
    assert "store unreachable" in view.message
    assert engine.record is None
    with pytest.raises(TrustflowError):
        await engine.advance()


@pytest.mark.asyncio
async def test_unknown_workflow_is_not_found():
    engine = WorkflowEngine(
        "missing", Session(user_id="u1"), _registry(), InMemoryWorkflowRepository()
    )
    view = await engine.load()
    assert view.kind == ViewKind.NOT_FOUND
    assert engine.render() is None


@pytest.mark.asyncio
async def test_access_denied_without_entitlement():
    repo = InMemoryWorkflowRepository()
    engine = _engine(repo, gate=AccessGate(repo))
    assert (await engine.load()).kind == ViewKind.ACCESS_DENIED

    await repo.add_order(Order(user_id="u1", workflow_id="wf", status="paid"))
    assert (await engine.load()).kind == ViewKind.IN_PROGRESS


@pytest.mark.asyncio
async def test_anonymous_session_is_denied():
    engine = _engine(user_id=None)
    assert (await engine.load()).kind == ViewKind.ACCESS_DENIED


@pytest.mark.asyncio
async def test_access_check_failure_is_error():
    class BrokenGateRepository(InMemoryWorkflowRepository):
        async def find_paid_order(self, user_id, workflow_id):
            raise ConnectionError("store unreachable")

    repo = BrokenGateRepository()
    engine = _engine(repo, gate=AccessGate(repo))
    assert (await engine.load()).kind == ViewKind.ERROR


@pytest.mark.asyncio
async def test_unimplemented_step_offers_skip():
    repo = InMemoryWorkflowRepository()
    engine = _engine(repo, implemented=("a", "c"))
    await engine.load()
    await engine.advance({"foo": 1})

    view = engine.view()
    assert view.kind == ViewKind.UNIMPLEMENTED
    assert "B step is currently being developed" in view.message

    screen = engine.render()
    assert isinstance(screen, UnimplementedStepScreen)
    view = await screen.skip()

    assert view.kind == ViewKind.IN_PROGRESS
    assert view.step.id == "c"
    assert engine.record.completed_steps == {1, 2}
    assert await repo.get_step_payloads("u1", "wf") == {"a": {"foo": 1}}


@pytest.mark.asyncio
async def test_strict_mode_rejects_missing_implementations():
    engine = _engine(implemented=("a",), strict=True)
    with pytest.raises(UnimplementedStepError) as exc_info:
        await engine.load()
    assert exc_info.value.step_id == "b"


@pytest.mark.asyncio
async def test_render_passes_saved_data_and_callbacks():
    repo = InMemoryWorkflowRepository()
    await repo.upsert_step_payload("u1", "wf", "b", {"draft": True})
    engine = _engine(repo)
    await engine.load()

    first = engine.render()
    assert first.data is None
    assert first.retreat is None

    await first.advance({"done": True})
    second = engine.render()
    assert second.data == {"draft": True}
    await second.retreat()
    assert engine.view().position == 1


@pytest.mark.asyncio
async def test_concurrent_advances_are_serialised():
    engine = _engine()
    await engine.load()
    await asyncio.gather(engine.advance(), engine.advance())
    assert engine.record.current_step == 3
    assert engine.record.completed_steps == {1, 2}


@pytest.mark.asyncio
async def test_resume_from_stored_progress():
    repo = InMemoryWorkflowRepository()
    first = _engine(repo)
    await first.load()
    await first.advance({"foo": 1})
    await first.close()

    second = _engine(repo)
    view = await second.load()
    assert view.position == 2
    assert second.record.step_data == {"a": {"foo": 1}}


@pytest.mark.asyncio
async def test_pointer_clamped_when_workflow_shrinks():
    repo = InMemoryWorkflowRepository()
    await repo.save_progress(
        ProgressRecord(user_id="u1", workflow_id="wf", current_step=9, completed_steps={1, 2})
    )
    engine = _engine(repo)
    view = await engine.load()
    assert view.kind == ViewKind.COMPLETE
    assert engine.record.current_step == 4


@pytest.mark.asyncio
async def test_update_step_data_merges_and_autosaves():
    repo = InMemoryWorkflowRepository()
    saved = []
    engine = _engine(repo, on_autosave=lambda key, payload: saved.append(payload))
    await engine.load()

    await engine.update_step_data("a", {"first": "Ada"})
    merged = await engine.update_step_data("a", {"last": "Lovelace"})
    assert merged == {"first": "Ada", "last": "Lovelace"}
    assert engine.view().data == merged
    assert engine.record.current_step == 1

    await asyncio.sleep(0.1)
    assert await repo.get_step_payloads("u1", "wf") == {"a": merged}
    assert saved == [merged]
    await engine.close()


@pytest.mark.asyncio
async def test_update_step_data_without_autosave_writes_through():
    repo = InMemoryWorkflowRepository()
    engine = WorkflowEngine(
        "wf",
        Session(user_id="u1"),
        _registry(),
        repo,
        autosave=AutosaveConfig(enabled=False),
    )
    await engine.load()
    await engine.update_step_data("a", {"first": "Ada"})
    assert await repo.get_step_payloads("u1", "wf") == {"a": {"first": "Ada"}}


@pytest.mark.asyncio
async def test_advance_supersedes_pending_autosave():
    repo = InMemoryWorkflowRepository()
    engine = _engine(repo)
    await engine.load()

    await engine.update_step_data("a", {"draft": 1})
    await engine.advance({"final": 2})
    await asyncio.sleep(0.1)

    assert await repo.get_step_payloads("u1", "wf") == {"a": {"final": 2}}
    await engine.close()


@pytest.mark.asyncio
async def test_summary_reports_indicator_state():
    engine = _engine()
    await engine.load()
    await engine.advance()

    summary = engine.summary()
    assert summary.total_steps == 3
    assert summary.completed_count == 1
    assert summary.percent_complete == 33.3
    assert [s.completed for s in summary.steps] == [True, False, False]
    assert [s.current for s in summary.steps] == [False, True, False]


@pytest.mark.asyncio
async def test_from_config_wires_default_bootcamp():
    repo = InMemoryWorkflowRepository()
    await repo.add_order(Order(user_id="u1", workflow_id="trust-bootcamp", status="paid"))
    engine = WorkflowEngine.from_config(
        "trust-bootcamp",
        Session(user_id="u1"),
        config=TrustflowConfig(),
        repository=repo,
    )
    view = await engine.load()
    assert view.kind == ViewKind.IN_PROGRESS
    assert view.step.id == "payment"
    assert view.step_key == "payment"

    screen = engine.render()
    assert await screen.confirm() is True
    assert engine.view().step.id == "nda"
    assert await repo.get_step_payloads("u1", "trust-bootcamp") == {
        "payment": {"access_method": "payment"}
    }
    await engine.close()
