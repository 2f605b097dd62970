"""Automation schemas for API request/response."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from src.flowsmith.models import AutomationStatus, EditSource, RunState, TriggerMode


class CodeFile(BaseModel):
    id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=200)
    code: str = ""
    order: int | None = None


class Dependency(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    version: str = Field(default="latest", max_length=100)


class PayloadFields(BaseModel):
    """Code payload: either ``code`` or ``files``, never both."""

    code: str | None = None
    files: list[CodeFile] | None = None
    dependencies: list[Dependency] | None = None
    env_var_names: list[str] | None = None

    @model_validator(mode="after")
    def check_single_shape(self) -> "PayloadFields":
        if self.code is not None and self.files is not None:
            raise ValueError("Provide either code or files, not both")
        return self

    def payload_kwargs(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "files": [f.model_dump() for f in self.files] if self.files is not None else None,
            "dependencies": (
                [d.model_dump() for d in self.dependencies]
                if self.dependencies is not None
                else None
            ),
            "env_var_names": self.env_var_names,
        }


class AutomationCreate(PayloadFields):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    runtime_environment: str | None = Field(default=None, max_length=50)
    trigger_mode: TriggerMode = TriggerMode.MANUAL
    admin_user_ids: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty or whitespace only")
        return v


class AutomationUpdate(BaseModel):
    """Metadata changes, fenced on ``doc_version``."""

    doc_version: int = Field(ge=1)
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    status: AutomationStatus | None = None
    trigger_mode: TriggerMode | None = None
    trigger_enabled: bool | None = None
    runtime_environment: str | None = Field(default=None, max_length=50)
    cost: float | None = Field(default=None, ge=0)
    admin_user_ids: list[str] | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"doc_version"}, mode="json")


class AutomationRead(BaseModel):
    id: UUID
    title: str
    description: str | None
    status: AutomationStatus
    trigger_mode: TriggerMode
    trigger_enabled: bool
    code: str | None
    files: list[dict[str, Any]] | None
    dependencies: list[dict[str, Any]]
    env_var_names: list[str]
    runtime_environment: str | None
    cost: float | None
    owner_user_id: str
    admin_user_ids: list[str]
    doc_version: int
    run_state: RunState
    current_execution_id: UUID | None
    has_api_key: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ApiKeyResponse(BaseModel):
    """The plaintext key is only ever returned here."""

    api_key: str


class EditRequest(PayloadFields):
    doc_version: int = Field(ge=1)
    message: str | None = Field(default=None, max_length=1000)
    source: EditSource = EditSource.MANUAL


class EditResponse(BaseModel):
    status: str
    doc_version: int
    version_id: UUID | None = None
    version: str | None = None


class GenerationStart(BaseModel):
    doc_version: int = Field(ge=1)


class GenerationResult(PayloadFields):
    message: str | None = Field(default=None, max_length=1000)


class RunStart(BaseModel):
    resume: bool = False
    runtime_environment: str | None = Field(default=None, max_length=50)


class RunResponse(BaseModel):
    execution_id: UUID
    resumed: bool = False


class StopResponse(BaseModel):
    execution_id: UUID
    state: RunState
    forced: bool = False
