"""Shared formatting functions for MCP responses.

Responses from the agent API are JSON; tools return readable text.
"""

STATUS_EMOJI = {
    "BACKLOG": "📥",
    "TODO": "📋",
    "IN_PROGRESS": "🚧",
    "IN_REVIEW": "👀",
    "DONE": "✅",
    "CANCELLED": "🚫",
}


def format_project(proj: dict) -> str:
    """Format a project for display."""
    desc_info = f"\nDescription: {proj['description']}" if proj.get('description') else ""
    repo_info = f"\nRepository: {proj['repo_url']}" if proj.get('repo_url') else ""
    context_info = "\nMission context: set" if proj.get('context_md') else "\nMission context: not set"

    return f"""**{proj['name']}**
ID: {proj['id']}
Features: {proj.get('feature_count', 0)}{desc_info}{repo_info}{context_info}
Created: {proj['created_at']}
Updated: {proj['updated_at']}"""


def format_subtask(subtask: dict) -> str:
    """Format a subtask as a checklist line."""
    mark = "x" if subtask['status'] == "DONE" else " "
    return f"- [{mark}] {subtask['title']} (ID: {subtask['id']})"


def format_feature_summary(feature: dict) -> str:
    """Format a feature as a one-line listing entry."""
    emoji = STATUS_EMOJI.get(feature['status'], '📄')
    progress = ""
    if feature.get('subtask_count'):
        progress = f" [{feature.get('done_subtask_count', 0)}/{feature['subtask_count']} subtasks]"
    return (f"{emoji} **{feature['title']}** ({feature['status']}, {feature['priority']}){progress}\n"
            f"   ID: {feature['id']} | Project: {feature['project_id']}")


def format_feature(feature: dict) -> str:
    """Format a feature with its checklist and spec."""
    emoji = STATUS_EMOJI.get(feature['status'], '📄')
    desc_info = f"\nDescription: {feature['description']}" if feature.get('description') else ""
    milestone_info = f"\nMilestone: {feature['milestone_id']}" if feature.get('milestone_id') else ""
    branch_info = f"\nBranch: {feature['branch_url']}" if feature.get('branch_url') else ""
    pr_info = f"\nPR: {feature['pr_url']}" if feature.get('pr_url') else ""

    subtasks = feature.get('subtasks') or []
    if subtasks:
        done = sum(1 for s in subtasks if s['status'] == "DONE")
        subtasks_info = f"\n\nSubtasks ({done}/{len(subtasks)} done):\n" + "\n".join(format_subtask(s) for s in subtasks)
    else:
        subtasks_info = "\n\nSubtasks: none"

    spec_info = f"\n\n---\n{feature['spec']}" if feature.get('spec') else "\n\n_No specification written yet._"

    return f"""{emoji} **{feature['title']}**
ID: {feature['id']}
Project: {feature['project_id']}
Status: {feature['status']} (position {feature['position']})
Priority: {feature['priority']}{milestone_info}{desc_info}{branch_info}{pr_info}{subtasks_info}{spec_info}"""


def format_milestone(milestone: dict) -> str:
    """Format a milestone with its assigned features."""
    date_info = f" · {milestone['target_date'][:10]}" if milestone.get('target_date') else ""
    desc_info = f"\n{milestone['description']}" if milestone.get('description') else ""
    features = milestone.get('features') or []
    if features:
        features_info = "\n" + "\n".join(f"  - [{f['status']}] {f['title']} ({f['id']})" for f in features)
    else:
        features_info = "\n  _No features assigned_"

    return f"""**{milestone['position'] + 1}. {milestone['name']}**{date_info}
ID: {milestone['id']}{desc_info}{features_info}"""


def format_changelog_entry(entry: dict) -> str:
    """Format a changelog entry as one line."""
    timestamp = entry['created_at'][:16].replace("T", " ")
    feature_info = f" · feature {entry['feature_id']}" if entry.get('feature_id') else ""
    return f"- `{timestamp}` [{entry['source']}] {entry['summary']}{feature_info}"
