"""Markdown rendering for agent context snapshots and feature export."""
import re
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

import yaml

from . import models, schemas
from .models import FeatureStatus, STATUS_DISPLAY_ORDER

STATUS_LABELS: Dict[FeatureStatus, str] = {
    FeatureStatus.IN_PROGRESS: "In Progress",
    FeatureStatus.IN_REVIEW: "In Review",
    FeatureStatus.TODO: "Todo",
    FeatureStatus.BACKLOG: "Backlog",
    FeatureStatus.DONE: "Done",
    FeatureStatus.CANCELLED: "Cancelled",
}

NO_SPEC_PLACEHOLDER = "_No specification written yet._"


def slugify(title: str) -> str:
    """Lowercase, runs of non-alphanumerics become "-", no leading/trailing "-"."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def export_filename(title: str) -> str:
    """Download filename for a feature export."""
    return f"{slugify(title) or 'feature'}.md"


def _iso(value: datetime) -> str:
    """ISO-8601 UTC timestamp for naive UTC datetimes."""
    return value.isoformat(timespec="seconds") + "Z"


def _minute(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def _checkbox(subtask: models.Subtask) -> str:
    return "x" if subtask.status == models.SubtaskStatus.DONE else " "


def group_features_by_status(
    features: Sequence[models.Feature],
) -> Dict[FeatureStatus, list[models.Feature]]:
    """
    Group features into board columns.

    Every status is present (possibly empty), keyed in display order; features
    keep their relative order within a column.
    """
    groups: Dict[FeatureStatus, list[models.Feature]] = {status: [] for status in STATUS_DISPLAY_ORDER}
    for feature in features:
        groups[FeatureStatus(feature.status)].append(feature)
    return groups


def summarize_groups(groups: Dict[FeatureStatus, list[models.Feature]]) -> Dict[str, int]:
    """Counts shown in the snapshot summary table."""
    return {
        "in_progress": len(groups[FeatureStatus.IN_PROGRESS]),
        "todo_backlog": len(groups[FeatureStatus.TODO]) + len(groups[FeatureStatus.BACKLOG]),
        "done": len(groups[FeatureStatus.DONE]),
        "total": sum(len(features) for features in groups.values()),
    }


# ============================================================================
# Context snapshot
# ============================================================================

def _render_feature(feature: models.Feature) -> str:
    lines = [
        f"#### {feature.title}",
        f"- Priority: {feature.priority.value}",
        f"- ID: `{feature.id}`",
    ]
    if feature.branch_url:
        lines.append(f"  Branch: {feature.branch_url}")
    if feature.pr_url:
        lines.append(f"  PR: {feature.pr_url}")
    for subtask in feature.subtasks:
        lines.append(f"  - [{_checkbox(subtask)}] {subtask.title}")

    block = "\n".join(lines)
    if feature.spec:
        indented = "\n".join(f"  {line}" for line in feature.spec.split("\n"))
        block += f"\n\n  **Spec:**\n{indented}"
    return block


def _render_feature_sections(groups: Dict[FeatureStatus, list[models.Feature]]) -> str:
    sections = []
    for status, features in groups.items():
        if not features:
            continue
        items = "\n\n".join(_render_feature(feature) for feature in features)
        sections.append(f"### {STATUS_LABELS[status]} ({len(features)})\n\n{items}")
    return "\n\n---\n\n".join(sections) or "_No features yet._"


def _render_milestones(
    milestones: Sequence[models.Milestone],
    features: Sequence[models.Feature],
) -> str:
    if not milestones:
        return "_No milestones yet. Create them via the roadmap or the API._"

    blocks = []
    for milestone in milestones:
        assigned = [feature for feature in features if feature.milestone_id == milestone.id]
        date = f" · {milestone.target_date.date().isoformat()}" if milestone.target_date else ""
        if assigned:
            plural = "" if len(assigned) == 1 else "s"
            counts = f" ({len(assigned)} feature{plural})"
            feature_list = "\n".join(
                f"  - [{feature.status.value}] {feature.title} · `{feature.id}`" for feature in assigned
            )
        else:
            counts = " (empty)"
            feature_list = "  _No features assigned_"
        blocks.append(f"### {milestone.name}{date}{counts}\n`{milestone.id}`\n{feature_list}")
    return "\n\n".join(blocks)


def _render_activity(entries: Sequence[models.ChangeLog]) -> str:
    if not entries:
        return "_No activity recorded yet._"
    lines = []
    for entry in entries:
        link = f" · feature `{entry.feature_id}`" if entry.feature_id else ""
        lines.append(f"- `{_minute(entry.created_at)}` {entry.summary}{link}")
    return "\n".join(lines)


def _render_agent_instructions(project_id: Any, agent_url: str) -> str:
    feature_url = f"{agent_url}/features/<featureId>"
    return f"""## Agent instructions

### Coding workflow (follow this for every feature)

1. Pick the next `todo` or `backlog` feature from this document.
2. Create a branch named after the feature: `feat/<short-slug>`
3. Move the feature to `in_progress` and record the branch URL:
```bash
curl -X PATCH {feature_url} \\
  -H "Content-Type: application/json" \\
  -d '{{"status": "in_progress", "branch_url": "https://github.com/org/repo/tree/feat/<slug>"}}'
```
4. Implement the feature. Mark subtasks done as you complete them:
```bash
curl -X PATCH {feature_url} \\
  -H "Content-Type: application/json" \\
  -d '{{"subtasks": [{{"id": "<subtaskId>", "status": "done"}}]}}'
```
5. Open a pull request against `main`. Record the PR URL and move the feature to `in_review`:
```bash
curl -X PATCH {feature_url} \\
  -H "Content-Type: application/json" \\
  -d '{{"status": "in_review", "pr_url": "https://github.com/org/repo/pull/<number>"}}'
```
6. **Stop and wait for human review.** Do not merge. Do not start the next feature until the human approves or requests changes.
7. Once merged, mark the feature done:
```bash
curl -X PATCH {feature_url} \\
  -H "Content-Type: application/json" \\
  -d '{{"status": "done"}}'
```

### Other useful commands

**Refresh context** (do this at session start and after any update):
```bash
curl -s "{agent_url}/projects/{project_id}/context"
```

**Create a new feature (optionally assign to a milestone):**
```bash
curl -X POST {agent_url}/features \\
  -H "Content-Type: application/json" \\
  -d '{{"project_id": "{project_id}", "title": "...", "priority": "medium", "status": "backlog", "milestone_id": "<milestoneId>"}}'
```

**Create a milestone:**
```bash
curl -X POST {agent_url}/projects/{project_id}/milestones \\
  -H "Content-Type: application/json" \\
  -d '{{"name": "v1.0", "description": "Initial release"}}'
```

After any update, re-fetch this document to confirm the change is reflected."""


def render_context_markdown(
    project: models.Project,
    features: Sequence[models.Feature],
    milestones: Sequence[models.Milestone],
    recent_activity: Sequence[models.ChangeLog],
    base_url: str,
    generated_at: Optional[datetime] = None,
) -> str:
    """
    Render the live project snapshot agents read before they start work.

    Args:
        project: The project
        features: All project features in board order, subtasks loaded
        milestones: Project milestones in roadmap order
        recent_activity: Already deduplicated and truncated changelog entries
        base_url: Public base URL of this service (used in curl examples)
        generated_at: Timestamp to print (defaults to now)

    Returns:
        The snapshot as markdown
    """
    generated = _iso(generated_at or models.utcnow())
    agent_url = f"{base_url.rstrip('/')}/api/v1/agent"
    refresh_url = f"{agent_url}/projects/{project.id}/context"
    groups = group_features_by_status(features)
    summary = summarize_groups(groups)

    facts = [f"- **Name:** {project.name}", f"- **ID:** `{project.id}`"]
    if project.description:
        facts.append(f"- **Description:** {project.description}")
    if project.repo_url:
        facts.append(f"- **Repository:** {project.repo_url}")
    facts.append(f"- **Generated:** {generated}")

    mission = project.context_md or (
        "_No project mission/context markdown yet. Add it in project settings "
        "or via the API (`context_md`)._"
    )

    parts = [
        f"# Project Context: {project.name}",
        "\n".join([
            "> **This is a live snapshot.** Re-fetch at any time to get the latest state.",
            "> ```",
            f'> curl -s "{refresh_url}" > .pm-board-context.md',
            "> ```",
        ]),
        "## Project",
        "\n".join(facts),
        "## Mission / Context",
        mission,
        "## Summary",
        "\n".join([
            "| Status | Count |",
            "|---|---|",
            f"| In Progress | {summary['in_progress']} |",
            f"| Todo / Backlog | {summary['todo_backlog']} |",
            f"| Done | {summary['done']} |",
            f"| **Total** | **{summary['total']}** |",
        ]),
        "## Milestones",
        _render_milestones(milestones, features),
        "## Features",
        _render_feature_sections(groups),
        "---",
        "## Recent activity",
        _render_activity(recent_activity),
        "---",
        _render_agent_instructions(project.id, agent_url),
        f"_Generated by PM Board · {generated}_",
    ]
    return "\n\n".join(parts) + "\n"


def build_context_document(
    project: models.Project,
    features: Sequence[models.Feature],
    milestones: Sequence[models.Milestone],
    recent_activity: Sequence[models.ChangeLog],
    generated_at: Optional[datetime] = None,
) -> schemas.ProjectContextResponse:
    """The same snapshot as a structured document (``?format=json``)."""
    groups = group_features_by_status(features)
    project_data = schemas.ProjectResponse.model_validate(project).model_copy(
        update={"feature_count": len(features)}
    )
    return schemas.ProjectContextResponse(
        project=project_data,
        summary=summarize_groups(groups),
        milestones=[schemas.MilestoneResponse.model_validate(m) for m in milestones],
        features=[
            schemas.StatusGroup(
                status=status,
                label=STATUS_LABELS[status],
                features=[schemas.FeatureResponse.model_validate(f) for f in column],
            )
            for status, column in groups.items()
        ],
        recent_activity=[schemas.ChangeLogResponse.model_validate(e) for e in recent_activity],
        generated_at=generated_at or models.utcnow(),
    )


# ============================================================================
# Feature export
# ============================================================================

def render_feature_export(
    feature: models.Feature,
    project_name: str,
    exported_at: Optional[datetime] = None,
) -> str:
    """
    Render one feature as a standalone markdown document.

    The document starts with YAML frontmatter carrying the machine-readable
    fields, followed by a readable header, the spec (or a placeholder) and the
    subtask checklist.
    """
    exported = _iso(exported_at or models.utcnow())
    frontmatter = {
        "id": str(feature.id),
        "title": feature.title,
        "project": project_name,
        "status": feature.status.value,
        "priority": feature.priority.value,
        "milestone_id": str(feature.milestone_id) if feature.milestone_id else None,
        "branch_url": feature.branch_url,
        "pr_url": feature.pr_url,
        "exported_at": exported,
    }
    frontmatter_yaml = yaml.safe_dump(frontmatter, default_flow_style=False, sort_keys=False, allow_unicode=True)

    header = [
        f"# {feature.title}",
        "",
        f"**Project:** {project_name}",
        f"**Status:** {feature.status.value.replace('_', ' ')}",
        f"**Priority:** {feature.priority.value}",
    ]
    if feature.branch_url:
        header.append(f"**Branch:** [{feature.branch_url}]({feature.branch_url})")
    if feature.pr_url:
        header.append(f"**PR:** [{feature.pr_url}]({feature.pr_url})")

    body = ["\n".join(header)]
    if feature.description:
        body.append(f"> {feature.description}")
    body.append("---")
    body.append(feature.spec or NO_SPEC_PLACEHOLDER)
    if feature.subtasks:
        checklist = "\n".join(f"- [{_checkbox(s)}] {s.title}" for s in feature.subtasks)
        body.append(f"## Subtasks\n\n{checklist}")
    body.append("---")
    body.append(f"_Exported from PM Board · {exported}_")

    return f"---\n{frontmatter_yaml}---\n\n" + "\n\n".join(body) + "\n"
