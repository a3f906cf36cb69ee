"""Core contracts shared by the engine, access gate and step implementations."""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from pydantic import BaseModel, Field

from .registry.models import StepDefinition

AdvanceCallback = Callable[[Optional[Any]], Awaitable[Any]]
RetreatCallback = Callable[[], Awaitable[Any]]


class StepImplementation(Protocol):
    """A self-contained unit of UI behind one workflow step.

    The engine only requires that ``render`` eventually calls ``on_advance``
    to move forward; what the step does internally is its own business.
    """

    def render(
        self,
        current_data: Any,
        on_advance: AdvanceCallback,
        on_retreat: Optional[RetreatCallback],
    ) -> Any:
        """Produce whatever the UI shell displays for this step."""


class ViewKind(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    IN_PROGRESS = "in_progress"
    UNIMPLEMENTED = "unimplemented"
    COMPLETE = "complete"


class StepView(BaseModel):
    """What the engine wants the UI shell to show right now."""

    kind: ViewKind
    workflow_id: str
    step: Optional[StepDefinition] = None
    position: Optional[int] = None
    total_steps: int = 0
    step_key: Optional[str] = None
    data: Any = None
    can_retreat: bool = False
    message: Optional[str] = None


class StepStatus(BaseModel):
    """Per-step entry of the progress indicator."""

    position: int
    step_id: str
    display_name: str
    completed: bool = False
    current: bool = False


class ProgressSummary(BaseModel):
    """Data behind the step indicator."""

    workflow_id: str
    steps: List[StepStatus] = Field(default_factory=list)
    completed_count: int = 0
    total_steps: int = 0
    is_complete: bool = False

    @property
    def percent_complete(self) -> float:
        if not self.total_steps:
            return 0.0
        return round(100.0 * self.completed_count / self.total_steps, 1)


class AccessState(str, Enum):
    CHECKING = "checking"
    NO_ACCESS = "no-access"
    HAS_ACCESS = "has-access"
    ERROR = "error"


class AccessMethod(str, Enum):
    NONE = "none"
    PAYMENT = "payment"
    GIFT_CODE = "gift-code"


class AccessStatus(BaseModel):
    """Detailed outcome of an access check."""

    status: AccessState = AccessState.NO_ACCESS
    method: AccessMethod = AccessMethod.NONE
    details: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def has_access(self) -> bool:
        return self.status == AccessState.HAS_ACCESS


class GiftCodeValidation(BaseModel):
    """Result of checking a gift code before redemption."""

    valid: bool
    gift_code_id: Optional[str] = None
    error: Optional[str] = None
