"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
    inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in dev/tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class Priority(str, enum.Enum):
    """Feature priority."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class FeatureStatus(str, enum.Enum):
    """Kanban column a feature sits in."""

    BACKLOG = "BACKLOG"
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class SubtaskStatus(str, enum.Enum):
    """Checklist item state."""

    OPEN = "OPEN"
    DONE = "DONE"


class ChangeAction(str, enum.Enum):
    """Changelog action tag."""

    FEATURE_CREATED = "FEATURE_CREATED"
    FEATURE_DELETED = "FEATURE_DELETED"
    FEATURE_UPDATED = "FEATURE_UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    SPEC_UPDATED = "SPEC_UPDATED"
    SUBTASK_DONE = "SUBTASK_DONE"
    SUBTASK_REOPENED = "SUBTASK_REOPENED"
    SUBTASK_CREATED = "SUBTASK_CREATED"


class ChangeSource(str, enum.Enum):
    """Who triggered a change: the board UI (human) or the agent API."""

    HUMAN = "human"
    AGENT = "agent"


# Board column display order, used by the context snapshot and listings
STATUS_DISPLAY_ORDER: list[FeatureStatus] = [
    FeatureStatus.IN_PROGRESS,
    FeatureStatus.IN_REVIEW,
    FeatureStatus.TODO,
    FeatureStatus.BACKLOG,
    FeatureStatus.DONE,
    FeatureStatus.CANCELLED,
]


class Project(Base):
    """
    Project model - top-level board.

    Owns features, milestones and the changelog. Deleting a project cascades
    to all of them.
    """

    __tablename__ = "projects"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    repo_url = Column(String(2048))
    context_md = Column(Text)  # Long-form mission/context markdown for agents

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    features = relationship("Feature", back_populates="project", cascade="all, delete-orphan")
    milestones = relationship(
        "Milestone",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Milestone.position",
    )
    changelog_entries = relationship(
        "ChangeLog",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Milestone(Base):
    """Roadmap milestone. Position is dense within the project."""

    __tablename__ = "milestones"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    target_date = Column(DateTime)
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="milestones")
    # No delete cascade: deleting a milestone unschedules its features (milestone_id -> NULL)
    features = relationship("Feature", back_populates="milestone", order_by="Feature.position")

    __table_args__ = (
        Index("ix_milestones_project_position", "project_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<Milestone {self.name} @{self.position}>"


class Feature(Base):
    """
    Feature model - a card on the board.

    Position is dense within (project_id, status).
    """

    __tablename__ = "features"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    milestone_id = Column(Uuid(as_uuid=True), ForeignKey("milestones.id", ondelete="SET NULL"), index=True)

    title = Column(String(500), nullable=False)
    description = Column(Text)
    spec = Column(Text)  # Markdown specification
    priority = Column(
        Enum(Priority, values_callable=_enum_values, name="priority"),
        nullable=False,
        default=Priority.MEDIUM,
    )
    status = Column(
        Enum(FeatureStatus, values_callable=_enum_values, name="featurestatus"),
        nullable=False,
        default=FeatureStatus.BACKLOG,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    branch_url = Column(String(2048))
    pr_url = Column(String(2048))

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    project = relationship("Project", back_populates="features")
    milestone = relationship("Milestone", back_populates="features")
    subtasks = relationship(
        "Subtask",
        back_populates="feature",
        cascade="all, delete-orphan",
        order_by=lambda: (Subtask.position, Subtask.created_at),
    )
    attachments = relationship(
        "Attachment",
        back_populates="feature",
        cascade="all, delete-orphan",
        order_by="Attachment.created_at",
    )

    __table_args__ = (
        Index("ix_features_project_status_position", "project_id", "status", "position"),
    )

    def __repr__(self) -> str:
        return f"<Feature {self.title} [{self.status}@{self.position}]>"


class Subtask(Base):
    """Checklist item on a feature. Position is dense within the feature."""

    __tablename__ = "subtasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    feature_id = Column(Uuid(as_uuid=True), ForeignKey("features.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    status = Column(
        Enum(SubtaskStatus, values_callable=_enum_values, name="subtaskstatus"),
        nullable=False,
        default=SubtaskStatus.OPEN,
    )
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    feature = relationship("Feature", back_populates="subtasks")

    def __repr__(self) -> str:
        return f"<Subtask {self.title} [{self.status}]>"


class Attachment(Base):
    """Uploaded file metadata. The blob lives in attachment storage under `filename`."""

    __tablename__ = "attachments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    feature_id = Column(Uuid(as_uuid=True), ForeignKey("features.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String(255), nullable=False, unique=True)
    original_name = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False)
    url = Column(String(2048), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    feature = relationship("Feature", back_populates="attachments")


class ChangeLog(Base):
    """
    Append-only audit record of a state change.

    feature_title and subtask_title are snapshots taken when the entry was
    written, so the entry stays readable after a rename or delete. Entries go
    away only with their project or feature; deleting a single subtask nulls
    subtask_id and keeps the snapshot.
    """

    __tablename__ = "changelog"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    action = Column(
        Enum(ChangeAction, values_callable=_enum_values, name="changeaction"),
        nullable=False,
    )
    summary = Column(Text, nullable=False)

    feature_id = Column(Uuid(as_uuid=True), ForeignKey("features.id", ondelete="CASCADE"), index=True)
    feature_title = Column(String(500))
    subtask_id = Column(Uuid(as_uuid=True), ForeignKey("subtasks.id", ondelete="SET NULL"))
    subtask_title = Column(String(500))

    meta = Column(JSONType)
    source = Column(
        Enum(ChangeSource, values_callable=_enum_values, name="changesource"),
        nullable=False,
        default=ChangeSource.HUMAN,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)

    project = relationship("Project", back_populates="changelog_entries")

    __table_args__ = (
        Index("ix_changelog_project_created", "project_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ChangeLog {self.action} {self.summary!r}>"


class ChangeLogImmutableError(Exception):
    """Raised when code tries to rewrite a changelog entry."""


IMMUTABLE_CHANGELOG_FIELDS = ("action", "summary", "meta", "project_id", "source", "created_at")


@event.listens_for(ChangeLog, "before_update")
def _reject_changelog_update(mapper, connection, target: ChangeLog) -> None:
    state = inspect(target)
    changed = [name for name in IMMUTABLE_CHANGELOG_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise ChangeLogImmutableError(
            f"Changelog entry {target.id} is immutable (attempted to change: {', '.join(changed)})"
        )
