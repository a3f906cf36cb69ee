"""Form-backed step implementations."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..contracts import AdvanceCallback, RetreatCallback

logger = logging.getLogger(__name__)


class NDAAcceptance(BaseModel):
    """Acceptance of the non-disclosure agreement."""

    accepted: bool
    signature: str = Field(min_length=1)

    @field_validator("accepted")
    @classmethod
    def _must_accept(cls, v: bool) -> bool:
        if not v:
            raise ValueError("the agreement must be accepted to continue")
        return v


class IdentityDetails(BaseModel):
    """Identity details as printed on a government ID."""

    full_name: str = Field(min_length=1)
    date_of_birth: date
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    uploaded_files: List[str] = Field(default_factory=list)


class TrustNameSelection(BaseModel):
    """Chosen trust name."""

    trust_base_name: str = Field(min_length=1)
    full_trust_name: Optional[str] = None
    trust_type: str = "ecclesiastic-revocable-living"

    @field_validator("trust_base_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("trust name cannot be blank")
        return v

    def model_post_init(self, __context: Any) -> None:
        if not self.full_trust_name:
            self.full_trust_name = f"{self.trust_base_name} Trust"


class OrdinationDetails(BaseModel):
    """Ministerial ordination and its uploaded certificate."""

    is_ordained: bool
    uploaded_files: List[str] = Field(min_length=1)
    minister_title: str = "Minister"

    @field_validator("is_ordained")
    @classmethod
    def _must_be_ordained(cls, v: bool) -> bool:
        if not v:
            raise ValueError("ministerial ordination is required before continuing")
        return v


class FormScreen:
    """Rendered state of a form step, bound to the engine's callbacks."""

    def __init__(
        self,
        title: str,
        model: Type[BaseModel],
        values: Dict[str, Any],
        on_advance: AdvanceCallback,
        on_retreat: Optional[RetreatCallback],
    ) -> None:
        self.title = title
        self.model = model
        self.values = dict(values)
        self.errors: Dict[str, str] = {}
        self._on_advance = on_advance
        self._on_retreat = on_retreat

    @property
    def fields(self) -> List[str]:
        return list(self.model.model_fields)

    @property
    def can_go_back(self) -> bool:
        return self._on_retreat is not None

    async def submit(self, values: Optional[Dict[str, Any]] = None) -> bool:
        """Validate the form and advance with the cleaned payload.

        Returns ``False`` and fills :attr:`errors` when validation fails.
        """
        self.values.update(values or {})
        try:
            parsed = self.model.model_validate(self.values)
        except ValidationError as e:
            self.errors = {
                ".".join(str(p) for p in err["loc"]) or "__root__": err["msg"]
                for err in e.errors()
            }
            logger.debug(f"Form {self.title} rejected: {self.errors}")
            return False
        self.errors = {}
        await self._on_advance(parsed.model_dump(mode="json"))
        return True

    async def back(self) -> None:
        if self._on_retreat is not None:
            await self._on_retreat()


class FormStep:
    """Step implementation that collects a pydantic-validated form."""

    def __init__(self, title: str, model: Type[BaseModel]) -> None:
        self.title = title
        self.model = model

    def render(
        self,
        current_data: Any,
        on_advance: AdvanceCallback,
        on_retreat: Optional[RetreatCallback],
    ) -> FormScreen:
        values = current_data if isinstance(current_data, dict) else {}
        return FormScreen(self.title, self.model, values, on_advance, on_retreat)
