"""MCP tool handlers.

All handlers follow a consistent pattern:
- Accept: arguments dict and an httpx.AsyncClient whose base URL is the agent API
- Return: list[TextContent]
- Raise httpx errors for the caller to turn into "Error: ..." text
- Use formatters for consistent output
"""
import logging

import httpx
from mcp.types import TextContent

from . import formatters

logger = logging.getLogger("pmboard-mcp.handlers")


def _params(arguments: dict) -> dict:
    return {k: v for k, v in arguments.items() if v is not None}


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


# ============================================================================
# Project Handlers
# ============================================================================

async def handle_list_projects(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List all projects."""
    response = await client.get("/projects")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {len(result)} projects")

    if not result:
        return _text("No projects found.")
    items_text = "\n\n".join(formatters.format_project(item) for item in result)
    return _text(f"Found {len(result)} projects\n\n{items_text}")


async def handle_get_project(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Get project details."""
    project_id = arguments["project_id"]
    response = await client.get(f"/projects/{project_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved project {project_id}: {result['name']}")

    text = formatters.format_project(result)
    if result.get("context_md"):
        text += f"\n\n## Mission / Context\n\n{result['context_md']}"
    return _text(text)


async def handle_update_project(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Update project details (only the fields given)."""
    arguments = dict(arguments)
    project_id = arguments.pop("project_id")
    response = await client.patch(f"/projects/{project_id}", json=arguments)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated project {project_id}: {sorted(arguments)}")

    return _text(f"Updated project: {result['name']}\n\n{formatters.format_project(result)}")


async def handle_get_project_context(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Get the live project snapshot (markdown by default)."""
    project_id = arguments["project_id"]
    output_format = arguments.get("format") or "markdown"
    response = await client.get(f"/projects/{project_id}/context", params={"format": output_format})
    response.raise_for_status()
    logger.info(f"Successfully retrieved {output_format} context for project {project_id}")

    return _text(response.text)


async def handle_get_changelog(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Get a page of the project's activity feed."""
    arguments = dict(arguments)
    project_id = arguments.pop("project_id")
    params = _params(arguments)
    if "dedupe" in params:
        params["dedupe"] = str(params["dedupe"]).lower()
    response = await client.get(f"/projects/{project_id}/changelog", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['count']} changelog entries for project {project_id}")

    if not result["items"]:
        return _text("No activity recorded yet.")
    lines = "\n".join(formatters.format_changelog_entry(entry) for entry in result["items"])
    summary = (f"Activity (page {result['page']} of {result['total_pages']}, "
               f"{result['total']} entries total)\n\n{lines}")
    return _text(summary)


# ============================================================================
# Feature Handlers
# ============================================================================

async def handle_list_features(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List features with optional filters."""
    response = await client.get("/features", params=_params(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['count']} features")

    if not result["items"]:
        return _text("No features found.")
    items_text = "\n\n".join(formatters.format_feature_summary(item) for item in result["items"])
    return _text(f"Found {result['count']} features\n\n{items_text}")


async def handle_get_feature(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Get a feature with subtasks and spec."""
    feature_id = arguments["feature_id"]
    response = await client.get(f"/features/{feature_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved feature {feature_id}: {result['title']}")

    return _text(formatters.format_feature(result))


async def handle_create_feature(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Create a feature (with optional initial subtasks)."""
    response = await client.post("/features", json=_params(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created feature: {result['title']} (ID: {result['id']})")

    text = (f"Created feature: {result['title']}\n"
            f"ID: {result['id']}\n\n"
            f"{formatters.format_feature(result)}")
    return _text(text)


async def handle_update_feature(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Update a feature and apply a subtask batch in one request."""
    arguments = dict(arguments)
    feature_id = arguments.pop("feature_id")
    response = await client.patch(f"/features/{feature_id}", json=arguments)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated feature {feature_id}: {sorted(arguments)}")

    return _text(f"Updated feature: {result['title']}\n\n{formatters.format_feature(result)}")


# ============================================================================
# Milestone Handlers
# ============================================================================

async def handle_list_milestones(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List milestones in roadmap order."""
    project_id = arguments["project_id"]
    response = await client.get(f"/projects/{project_id}/milestones")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {len(result)} milestones for project {project_id}")

    if not result:
        return _text("No milestones yet.")
    items_text = "\n\n".join(formatters.format_milestone(item) for item in result)
    return _text(f"Found {len(result)} milestones\n\n{items_text}")


async def handle_create_milestone(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Create a milestone."""
    arguments = dict(arguments)
    project_id = arguments.pop("project_id")
    response = await client.post(f"/projects/{project_id}/milestones", json=_params(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created milestone: {result['name']} (ID: {result['id']})")

    return _text(f"Created milestone: {result['name']}\n\n{formatters.format_milestone(result)}")


async def handle_update_milestone(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Update or reposition a milestone."""
    arguments = dict(arguments)
    project_id = arguments.pop("project_id")
    milestone_id = arguments.pop("milestone_id")
    response = await client.patch(f"/projects/{project_id}/milestones/{milestone_id}", json=arguments)
    response.raise_for_status()
    logger.info(f"Successfully updated milestone {milestone_id}: {sorted(arguments)}")

    if response.status_code == 204:
        return _text(f"Milestone {milestone_id} no longer exists; nothing changed.")
    result = response.json()
    return _text(f"Updated milestone: {result['name']}\n\n{formatters.format_milestone(result)}")


async def handle_delete_milestone(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Delete a milestone; its features become unassigned."""
    project_id = arguments["project_id"]
    milestone_id = arguments["milestone_id"]
    response = await client.delete(f"/projects/{project_id}/milestones/{milestone_id}")
    response.raise_for_status()
    logger.info(f"Successfully deleted milestone {milestone_id}")

    return _text(f"Deleted milestone {milestone_id}. Its features are now unassigned.")


HANDLERS = {
    # Project handlers
    "list_projects": handle_list_projects,
    "get_project": handle_get_project,
    "update_project": handle_update_project,
    "get_project_context": handle_get_project_context,
    "get_changelog": handle_get_changelog,
    # Feature handlers
    "list_features": handle_list_features,
    "get_feature": handle_get_feature,
    "create_feature": handle_create_feature,
    "update_feature": handle_update_feature,
    # Milestone handlers
    "list_milestones": handle_list_milestones,
    "create_milestone": handle_create_milestone,
    "update_milestone": handle_update_milestone,
    "delete_milestone": handle_delete_milestone,
}
