"""Trustflow: resumable multi-step onboarding workflows."""

from .access import AccessGate, GiftCodeService
from .auth import JwtAuthProvider, Session, StaticAuthProvider
from .autosave import AutosaveCoordinator
from .config import TrustflowConfig, load_config
from .contracts import ProgressSummary, StepView, ViewKind
from .engine import UnimplementedStepScreen, WorkflowEngine
from .persistence import ProgressRecord, StepPayloadStore, get_repository
from .registry import StepDefinition, StepRegistry, WorkflowDefinition, default_registry
from .steps import StepImplementationRegistry, default_implementations

__version__ = "0.1.0"
__all__ = [
    "AccessGate",
    "AutosaveCoordinator",
    "GiftCodeService",
    "JwtAuthProvider",
    "ProgressRecord",
    "ProgressSummary",
    "Session",
    "StaticAuthProvider",
    "StepDefinition",
    "StepImplementationRegistry",
    "StepPayloadStore",
    "StepRegistry",
    "StepView",
    "TrustflowConfig",
    "UnimplementedStepScreen",
    "ViewKind",
    "WorkflowDefinition",
    "WorkflowEngine",
    "default_implementations",
    "default_registry",
    "get_repository",
    "load_config",
]
