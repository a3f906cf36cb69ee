"""Workflow engine: drives one user's progress through one workflow."""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from typing import Any, Callable, List, Optional

from .access import AccessGate
from .auth import Session
from .autosave import AutosaveCoordinator, ErrorCallback, SavedCallback
from .config import AutosaveConfig, EngineConfig, TrustflowConfig, load_config
from .constants import POSITIONAL_STEP_KEY_PREFIX
from .contracts import ProgressSummary, StepStatus, StepView, ViewKind
from .exceptions import PersistenceError, TrustflowError, WorkflowNotFoundError
from .persistence import (
    ProgressRecord,
    StepPayloadStore,
    WorkflowRepository,
    effective_timeout,
    get_repository,
    store_call,
)
from .registry import StepDefinition, StepRegistry, default_registry
from .steps import StepImplementationRegistry, default_implementations

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[ProgressRecord], Any]


class UnimplementedStepScreen:
    """Placeholder shown for a step with no registered implementation."""

    def __init__(self, engine: "WorkflowEngine", view: StepView) -> None:
        self._engine = engine
        self.view = view

    @property
    def message(self) -> Optional[str]:
        return self.view.message

    async def skip(self) -> StepView:
        return await self._engine.skip()

    async def back(self) -> StepView:
        return await self._engine.retreat()


class WorkflowEngine:
    """Controller over a :class:`ProgressRecord` and the workflow's steps.

    Transitions are confirm-then-transition: the candidate record is
    persisted first and only then replaces the engine's record, so a failed
    ``advance`` or ``retreat`` raises :class:`PersistenceError` and leaves the
    progress exactly as it was. Transitions are serialised by a lock, so two
    rapid "Next" clicks advance twice, never skipping a step's bookkeeping.
    """

    def __init__(
        self,
        workflow_id: str,
        session: Session,
        registry: StepRegistry,
        repository: WorkflowRepository,
        implementations: Optional[StepImplementationRegistry] = None,
        gate: Optional[AccessGate] = None,
        config: Optional[EngineConfig] = None,
        autosave: Optional[AutosaveConfig] = None,
        timeout: Optional[float] = None,
        on_complete: Optional[CompletionCallback] = None,
        on_autosave: Optional[SavedCallback] = None,
        on_autosave_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.workflow_id = workflow_id
        self.session = session
        self._registry = registry
        self._repository = repository
        self._implementations = implementations or StepImplementationRegistry()
        self._gate = gate
        self._config = config or EngineConfig()
        self._timeout = effective_timeout(repository, timeout)
        self._on_complete = on_complete
        self._payloads = StepPayloadStore(repository, timeout=timeout)

        autosave = autosave or AutosaveConfig()
        self.autosave: Optional[AutosaveCoordinator] = None
        if autosave.enabled:
            self.autosave = AutosaveCoordinator(
                self._payloads,
                session.user_id,
                workflow_id,
                debounce_seconds=autosave.debounce_seconds,
                on_saved=on_autosave,
                on_error=on_autosave_error,
            )

        self._steps: List[StepDefinition] = []
        self._record: Optional[ProgressRecord] = None
        self._state = ViewKind.LOADING
        self._message: Optional[str] = None
        self.last_error: Optional[str] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        workflow_id: str,
        session: Session,
        config: Optional[TrustflowConfig] = None,
        repository: Optional[WorkflowRepository] = None,
        registry: Optional[StepRegistry] = None,
        implementations: Optional[StepImplementationRegistry] = None,
        **kwargs: Any,
    ) -> "WorkflowEngine":
        """Wire an engine from configuration, filling in default collaborators."""
        config = config or load_config()
        repository = repository or get_repository(config=config)
        registry = registry or default_registry(config.workflows)
        gate = AccessGate(repository, timeout=config.store.timeout_seconds)
        implementations = implementations or default_implementations(
            gate, session, workflow_id
        )
        return cls(
            workflow_id,
            session,
            registry,
            repository,
            implementations=implementations,
            gate=gate,
            config=config.engine,
            autosave=config.autosave,
            timeout=config.store.timeout_seconds,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Introspection
    @property
    def steps(self) -> List[StepDefinition]:
        return list(self._steps)

    @property
    def record(self) -> Optional[ProgressRecord]:
        return self._record.model_copy(deep=True) if self._record else None

    @property
    def state(self) -> ViewKind:
        return self.view().kind

    def step_key(self, position: int) -> str:
        """Storage key for the step at 1-based ``position``."""
        if self._config.step_key_strategy == "position":
            return f"{POSITIONAL_STEP_KEY_PREFIX}{position}"
        return self._steps[position - 1].id

    def _require_record(self) -> ProgressRecord:
        if self._record is None:
            raise TrustflowError(
                f"Workflow {self.workflow_id} is not loaded (state={self._state.value})"
            )
        return self._record

    # ------------------------------------------------------------------
    # Loading
    async def load(self) -> StepView:
        """Resolve steps, check access and load the user's progress.

        Failures are reported through the returned view rather than raised,
        except for a missing implementation in strict mode, which is a
        startup error.
        """
        self._state = ViewKind.LOADING
        self._message = None
        self._record = None

        try:
            self._steps = self._registry.resolve_steps(self.workflow_id)
        except WorkflowNotFoundError as e:
            logger.error(f"Cannot start workflow: {e}")
            return self._fail(ViewKind.NOT_FOUND, str(e))

        self._implementations.validate(self._steps, strict=self._config.strict_steps)

        user_id = self.session.user_id
        if not user_id:
            return self._fail(ViewKind.ACCESS_DENIED, "Sign in to continue")

        if self._gate is not None:
            try:
                allowed = await self._gate.has_access(user_id, self.workflow_id)
            except PersistenceError as e:
                logger.error(f"Access check failed for user={user_id}: {e}")
                return self._fail(ViewKind.ERROR, str(e))
            if not allowed:
                logger.info(f"User {user_id} has no access to {self.workflow_id}")
                return self._fail(
                    ViewKind.ACCESS_DENIED,
                    "Purchase the workflow or redeem a gift code to continue",
                )

        try:
            record = await store_call(
                self._repository.get_progress(user_id, self.workflow_id),
                operation="progress load",
                timeout=self._timeout,
            )
            payloads = await self._payloads.read_all(user_id, self.workflow_id)
        except PersistenceError as e:
            logger.error(f"Error loading progress for user={user_id}: {e}")
            return self._fail(ViewKind.ERROR, str(e))

        if record is None:
            record = ProgressRecord(user_id=user_id, workflow_id=self.workflow_id)
        record.step_data = payloads
        record.clamp(len(self._steps))
        self._record = record

        if self.autosave is not None:
            for key, payload in payloads.items():
                self.autosave.prime(key, payload)

        self._state = ViewKind.COMPLETE if record.is_complete else ViewKind.IN_PROGRESS
        logger.info(
            f"Loaded {self.workflow_id} for user={user_id} at step "
            f"{record.current_step}/{len(self._steps)}"
        )
        return self.view()

    def _fail(self, kind: ViewKind, message: str) -> StepView:
        self._state = kind
        self._message = message
        return self.view()

    # ------------------------------------------------------------------
    # Rendering
    def view(self) -> StepView:
        """Describe what should be shown for the current state."""
        total = len(self._steps)
        if self._record is None or self._state not in (
            ViewKind.IN_PROGRESS,
            ViewKind.COMPLETE,
        ):
            return StepView(
                kind=self._state,
                workflow_id=self.workflow_id,
                total_steps=total,
                message=self._message,
            )

        record = self._record
        if record.is_complete:
            title = self._registry.get_workflow(self.workflow_id).title or self.workflow_id
            return StepView(
                kind=ViewKind.COMPLETE,
                workflow_id=self.workflow_id,
                total_steps=total,
                can_retreat=total > 0,
                message=f"You have successfully completed all steps in {title}.",
            )

        position = record.current_step
        step = self._steps[position - 1]
        key = self.step_key(position)
        implemented = step.component_name in self._implementations
        return StepView(
            kind=ViewKind.IN_PROGRESS if implemented else ViewKind.UNIMPLEMENTED,
            workflow_id=self.workflow_id,
            step=step,
            position=position,
            total_steps=total,
            step_key=key,
            data=copy.deepcopy(record.step_data.get(key)),
            can_retreat=position > 1,
            message=None
            if implemented
            else f"The {step.display_name} step is currently being developed.",
        )

    def render(self) -> Any:
        """Render the current step.

        Returns the step implementation's screen, an
        :class:`UnimplementedStepScreen` offering a skip, or ``None`` when
        there is no step to render (see :meth:`view` for why).
        """
        view = self.view()
        if view.kind == ViewKind.UNIMPLEMENTED:
            return UnimplementedStepScreen(self, view)
        if view.kind != ViewKind.IN_PROGRESS:
            return None
        implementation = self._implementations.get(view.step.component_name)
        return implementation.render(
            view.data,
            self.advance,
            self.retreat if view.can_retreat else None,
        )

    def summary(self) -> ProgressSummary:
        """Per-step status for a progress indicator."""
        record = self._record
        completed = record.completed_steps if record else set()
        current = record.current_step if record else 0
        statuses = [
            StepStatus(
                position=i,
                step_id=step.id,
                display_name=step.display_name,
                completed=i in completed,
                current=i == current,
            )
            for i, step in enumerate(self._steps, start=1)
        ]
        return ProgressSummary(
            workflow_id=self.workflow_id,
            steps=statuses,
            completed_count=sum(1 for s in statuses if s.completed),
            total_steps=len(statuses),
            is_complete=bool(record and record.is_complete),
        )

    # ------------------------------------------------------------------
    # Transitions
    async def advance(self, step_data: Any = None) -> StepView:
        """Complete the current step and move to the next one.

        ``step_data``, when given, is stored under the key of the step being
        left before the pointer moves. Advancing a completed workflow is a
        no-op.

        Raises:
            PersistenceError: If the payload or progress could not be saved.
                The progress record is left unchanged.
        """
        async with self._lock:
            record = self._require_record()
            total = len(self._steps)
            if record.is_complete:
                logger.warning(f"Ignoring advance on completed workflow {self.workflow_id}")
                return self.view()

            key = self.step_key(record.current_step)
            candidate = record.model_copy(deep=True)
            try:
                if step_data is not None:
                    if self.autosave is not None:
                        await self.autosave.cancel(key)
                    await self._payloads.write(
                        record.user_id, self.workflow_id, key, step_data
                    )
                    candidate.step_data[key] = copy.deepcopy(step_data)
                    if self.autosave is not None:
                        self.autosave.prime(key, step_data)
                elif self.autosave is not None:
                    # Edits still waiting on a timer, or whose autosave failed,
                    # must be stored before the step counts as completed.
                    await self.autosave.cancel(key)
                    unsaved = record.step_data.get(key)
                    if unsaved is not None and not self.autosave.is_saved(key, unsaved):
                        await self._payloads.write(
                            record.user_id, self.workflow_id, key, unsaved
                        )
                        self.autosave.prime(key, unsaved)

                candidate.advance(total)
                await store_call(
                    self._repository.save_progress(candidate),
                    operation="progress save",
                    timeout=self._timeout,
                )
            except PersistenceError as e:
                self.last_error = f"Your progress could not be saved: {e}"
                logger.error(
                    f"Advance failed for user={record.user_id} workflow={self.workflow_id} "
                    f"at step {record.current_step}: {e}"
                )
                raise

            self._record = candidate
            self.last_error = None
            logger.info(
                f"User {record.user_id} completed step {record.current_step}/{total} "
                f"of {self.workflow_id}"
            )

        if candidate.is_complete:
            self._state = ViewKind.COMPLETE
            logger.info(f"Workflow {self.workflow_id} complete for user={record.user_id}")
            if self._on_complete is not None:
                result = self._on_complete(candidate.model_copy(deep=True))
                if inspect.isawaitable(result):
                    await result
        return self.view()

    async def skip(self) -> StepView:
        """Leave the current step without data (used for unimplemented steps)."""
        return await self.advance()

    async def retreat(self) -> StepView:
        """Go back one step; a no-op on the first step.

        Raises:
            PersistenceError: If the new pointer could not be saved.
        """
        async with self._lock:
            record = self._require_record()
            if record.current_step <= 1:
                return self.view()

            candidate = record.model_copy(deep=True)
            candidate.retreat()
            try:
                await store_call(
                    self._repository.save_progress(candidate),
                    operation="progress save",
                    timeout=self._timeout,
                )
            except PersistenceError as e:
                self.last_error = f"Could not go back: {e}"
                logger.error(f"Retreat failed for user={record.user_id}: {e}")
                raise

            self._record = candidate
            self.last_error = None
            self._state = ViewKind.IN_PROGRESS
        return self.view()

    async def update_step_data(self, step_key: str, partial: dict) -> Any:
        """Shallow-merge ``partial`` into the payload of ``step_key``.

        The pointer does not move. The merged payload is autosaved after the
        debounce delay, or written immediately when autosave is disabled.
        """
        record = self._require_record()
        existing = record.step_data.get(step_key)
        merged = dict(existing) if isinstance(existing, dict) else {}
        merged.update(partial)
        if self.autosave is not None:
            record.step_data[step_key] = merged
            self.autosave.schedule(step_key, merged)
        else:
            await self._payloads.write(record.user_id, self.workflow_id, step_key, merged)
            record.step_data[step_key] = merged
        return copy.deepcopy(merged)

    async def close(self) -> None:
        """Flush pending autosaves."""
        if self.autosave is not None:
            await self.autosave.close()
