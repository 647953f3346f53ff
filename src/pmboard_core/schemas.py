"""Pydantic schemas for request/response validation.

Two input dialects share one data model:

- Human surface: enums must use canonical spelling (``IN_PROGRESS``).
- Agent surface: enum inputs are case-insensitive and treat spaces and
  hyphens as underscores (``"in progress"``, ``"IN-PROGRESS"``), since agents
  and LLM callers rarely reproduce the canonical form exactly.
"""
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .models import (
    ChangeAction,
    ChangeSource,
    FeatureStatus,
    Priority,
    SubtaskStatus,
)


# =============================================================================
# Shared field types
# =============================================================================

_HTTP_URL = TypeAdapter(HttpUrl)


def _check_http_url(value: str) -> str:
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError:
        raise ValueError("Must be a valid URL")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def normalize_enum_token(value: Any) -> Any:
    """
    Normalize a loosely spelled enum token for the agent surface.

    "in progress", "In-Progress" and "in_progress" all become "IN_PROGRESS".
    Non-string values pass through for the enum validator to reject.
    """
    if isinstance(value, str):
        return value.strip().upper().replace(" ", "_").replace("-", "_")
    return value


# Stored as the caller's string once validated; "" clears the field
UrlStr = Annotated[str, AfterValidator(_check_http_url)]
OptionalUrl = Annotated[Optional[UrlStr], BeforeValidator(_blank_to_none)]

AgentPriority = Annotated[Priority, BeforeValidator(normalize_enum_token)]
AgentFeatureStatus = Annotated[FeatureStatus, BeforeValidator(normalize_enum_token)]
AgentSubtaskStatus = Annotated[SubtaskStatus, BeforeValidator(normalize_enum_token)]


class PaginatedResponse(BaseModel):
    """Pagination envelope fields."""

    total: int
    page: int
    page_size: int
    total_pages: int


class PositionUpdate(BaseModel):
    """Drop index for drag-and-drop reordering within a scope."""

    position: int = Field(..., ge=0, description="Zero-based target index within the scope")


# =============================================================================
# Project Schemas
# =============================================================================

class ProjectCreate(BaseModel):
    """Schema for creating a project."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    repo_url: OptionalUrl = None
    context_md: Optional[str] = Field(None, description="Mission/context markdown shown to agents")


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Only fields that are sent are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    repo_url: OptionalUrl = None
    context_md: Optional[str] = None


class ProjectResponse(BaseModel):
    """Schema for project responses."""

    id: UUID
    name: str
    description: Optional[str] = None
    repo_url: Optional[str] = None
    context_md: Optional[str] = None
    feature_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectListResponse(PaginatedResponse):
    """Paginated project list."""

    items: list[ProjectResponse]


# =============================================================================
# Subtask Schemas
# =============================================================================

class SubtaskCreate(BaseModel):
    """Schema for creating a subtask (appended to the end of the checklist)."""

    title: str = Field(..., min_length=1, max_length=500)


class SubtaskUpdate(BaseModel):
    """Schema for updating a subtask."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    status: Optional[SubtaskStatus] = None


class SubtaskResponse(BaseModel):
    """Schema for subtask responses."""

    id: UUID
    feature_id: UUID
    title: str
    status: SubtaskStatus
    position: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# =============================================================================
# Attachment Schemas
# =============================================================================

class AttachmentResponse(BaseModel):
    """Schema for attachment metadata."""

    id: UUID
    feature_id: UUID
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Feature Schemas
# =============================================================================

class FeatureCreate(BaseModel):
    """Schema for creating a feature from the board.

    The feature is appended to the end of its status column.
    """

    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    spec: Optional[str] = Field(None, description="Markdown specification")
    priority: Priority = Priority.MEDIUM
    status: FeatureStatus = FeatureStatus.BACKLOG
    branch_url: OptionalUrl = None
    pr_url: OptionalUrl = None
    milestone_id: Optional[UUID] = None


class FeatureUpdate(BaseModel):
    """Schema for plain field updates.

    Column moves (status + position) go through the position endpoint; a bare
    status change here appends the feature to the end of the new column.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    spec: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[FeatureStatus] = None
    branch_url: OptionalUrl = None
    pr_url: OptionalUrl = None
    milestone_id: Optional[UUID] = None


class FeatureMoveRequest(BaseModel):
    """Drag-and-drop move: target column and zero-based index within it."""

    status: FeatureStatus
    position: int = Field(..., ge=0)


class FeatureListItem(BaseModel):
    """Lightweight feature for board and search listings (no spec body)."""

    id: UUID
    project_id: UUID
    milestone_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    priority: Priority
    status: FeatureStatus
    position: int
    branch_url: Optional[str] = None
    pr_url: Optional[str] = None
    subtask_count: int = 0
    done_subtask_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class FeatureResponse(BaseModel):
    """Full feature with subtasks and attachments."""

    id: UUID
    project_id: UUID
    milestone_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    spec: Optional[str] = None
    priority: Priority
    status: FeatureStatus
    position: int
    branch_url: Optional[str] = None
    pr_url: Optional[str] = None
    subtasks: list[SubtaskResponse] = Field(default_factory=list)
    attachments: list[AttachmentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class FeatureListResponse(PaginatedResponse):
    """Paginated feature search results."""

    items: list[FeatureListItem]


# =============================================================================
# Milestone Schemas
# =============================================================================

class MilestoneCreate(BaseModel):
    """Schema for creating a milestone (appended to the end of the roadmap)."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    target_date: Optional[datetime] = None


class MilestoneUpdate(BaseModel):
    """Schema for updating a milestone. Reordering uses the position endpoint."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    target_date: Optional[datetime] = None


class MilestoneFeature(BaseModel):
    """Feature summary shown under a milestone."""

    id: UUID
    title: str
    status: FeatureStatus
    priority: Priority

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class MilestoneResponse(BaseModel):
    """Schema for milestone responses, with assigned features."""

    id: UUID
    project_id: UUID
    name: str
    description: Optional[str] = None
    target_date: Optional[datetime] = None
    position: int
    features: list[MilestoneFeature] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Changelog Schemas
# =============================================================================

class ChangeLogResponse(BaseModel):
    """Schema for changelog entries (read-only)."""

    id: int
    project_id: UUID
    action: ChangeAction
    summary: str
    feature_id: Optional[UUID] = None
    feature_title: Optional[str] = None
    subtask_id: Optional[UUID] = None
    subtask_title: Optional[str] = None
    meta: Optional[dict[str, Any]] = None
    source: ChangeSource
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ChangeLogListResponse(PaginatedResponse):
    """Page of changelog entries, newest first."""

    items: list[ChangeLogResponse]
    count: int = Field(description="Entries on this page after optional dedupe")
    deduped: bool = False


# =============================================================================
# Agent Schemas
# =============================================================================

class SubtaskCreateOp(BaseModel):
    """Batch op: append a new subtask."""

    kind: Literal["create"] = "create"
    title: str = Field(..., min_length=1, max_length=500)


class SubtaskStatusOp(BaseModel):
    """Batch op: set an existing subtask's status."""

    kind: Literal["update_status"] = "update_status"
    id: UUID
    status: AgentSubtaskStatus


SubtaskOp = Annotated[Union[SubtaskCreateOp, SubtaskStatusOp], Field(discriminator="kind")]


def tag_subtask_op(item: Any) -> Any:
    """
    Tag a raw subtask batch element with its op kind.

    Agents send plain strings for new subtasks and {id, status} objects for
    status changes; everything downstream works on the tagged ops.
    """
    if isinstance(item, str):
        return {"kind": "create", "title": item}
    if isinstance(item, dict) and "kind" not in item:
        if "id" in item:
            return {"kind": "update_status", **item}
        if "title" in item:
            return {"kind": "create", **item}
    return item


class AgentFeatureCreate(BaseModel):
    """Agent schema for creating a feature, optionally with initial subtasks."""

    project_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    spec: Optional[str] = None
    priority: AgentPriority = Priority.MEDIUM
    status: AgentFeatureStatus = FeatureStatus.BACKLOG
    branch_url: OptionalUrl = None
    pr_url: OptionalUrl = None
    milestone_id: Optional[UUID] = None
    subtasks: list[Annotated[str, Field(min_length=1, max_length=500)]] = Field(default_factory=list)


class AgentFeatureUpdate(BaseModel):
    """Agent schema for updating a feature.

    `subtasks` mixes new subtask titles (strings) and `{id, status}` objects.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    spec: Optional[str] = None
    priority: Optional[AgentPriority] = None
    status: Optional[AgentFeatureStatus] = None
    branch_url: OptionalUrl = None
    pr_url: OptionalUrl = None
    milestone_id: Optional[UUID] = None
    subtasks: list[SubtaskOp] = Field(default_factory=list)

    @field_validator("subtasks", mode="before")
    @classmethod
    def tag_subtask_ops(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [tag_subtask_op(item) for item in value]
        return value


class AgentProjectUpdate(BaseModel):
    """Agent schema for updating project details."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    repo_url: OptionalUrl = None
    context_md: Optional[str] = None


class AgentMilestoneCreate(MilestoneCreate):
    """Agent milestone creation; `position` inserts at an index instead of appending."""

    position: Optional[int] = Field(None, ge=0)


class AgentMilestoneUpdate(MilestoneUpdate):
    """Agent milestone update; `position` reorders the roadmap."""

    position: Optional[int] = Field(None, ge=0)


class AgentFeatureListResponse(BaseModel):
    """Agent feature listing (limit-based, not paginated)."""

    items: list[FeatureListItem]
    count: int


# =============================================================================
# Context Snapshot Schemas
# =============================================================================

class StatusGroup(BaseModel):
    """Features in one board column."""

    status: FeatureStatus
    label: str
    features: list[FeatureResponse]

    model_config = ConfigDict(use_enum_values=True)


class ProjectContextResponse(BaseModel):
    """Structured (JSON) form of the project context snapshot."""

    project: ProjectResponse
    summary: dict[str, int]
    milestones: list[MilestoneResponse]
    features: list[StatusGroup]
    recent_activity: list[ChangeLogResponse]
    generated_at: datetime
