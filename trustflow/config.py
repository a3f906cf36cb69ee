from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_AUTOSAVE_DEBOUNCE_SECONDS, DEFAULT_STORE_TIMEOUT_SECONDS
from .registry.models import WorkflowDefinition


class StoreConfig(BaseModel):
    """Durable store settings."""

    database_url: Optional[str] = None
    timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS


class AutosaveConfig(BaseModel):
    """Debounced autosave settings."""

    enabled: bool = True
    debounce_seconds: float = DEFAULT_AUTOSAVE_DEBOUNCE_SECONDS


class EngineConfig(BaseModel):
    """Workflow engine behaviour."""

    step_key_strategy: Literal["id", "position"] = "id"
    strict_steps: bool = False


class AuthConfig(BaseModel):
    """Access token verification settings."""

    jwt_secret: Optional[str] = None
    jwks_url: Optional[str] = None
    audience: str = "authenticated"
    issuer: Optional[str] = None
    leeway: int = 30


class TrustflowConfig(BaseModel):
    """Top-level configuration model."""

    log_level: str = "INFO"
    store: StoreConfig = Field(default_factory=StoreConfig)
    autosave: AutosaveConfig = Field(default_factory=AutosaveConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    workflows: List[WorkflowDefinition] = Field(default_factory=list)

    @property
    def database_url(self) -> Optional[str]:
        return self.store.database_url


def load_config(path: Optional[str] = None) -> TrustflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TRUSTFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("TRUSTFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TrustflowConfig(**data)
    else:
        config = TrustflowConfig()

    env_db_url = os.getenv("TRUSTFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.store.database_url = env_db_url
    return config
