"""MCP tool definitions for PM Board.

Every tool maps onto one agent API endpoint (see handlers).
"""

from mcp.types import Tool

STATUS_VALUES = ["backlog", "todo", "in_progress", "in_review", "done", "cancelled"]
PRIORITY_VALUES = ["low", "medium", "high", "urgent"]

_STATUS_HINT = "Case-insensitive; 'in progress' and 'IN-PROGRESS' also work."


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for PM Board."""
    return [
        # ============================================================================
        # Project Tools
        # ============================================================================
        Tool(
            name="list_projects",
            description="List all projects. "
                       "Common pattern: list_projects() → get_project_context(project_id=...) → pick a feature → update_feature().",
            inputSchema={
                "type": "object",
                "properties": {}
            }
        ),
        Tool(
            name="get_project",
            description="Get project details (name, description, repository, mission context). "
                       "Errors: 404 (not found).",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    }
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="update_project",
            description="Update project details. Use context_md to record the project's mission and conventions for agents.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project to update"
                    },
                    "name": {
                        "type": "string",
                        "description": "New project name"
                    },
                    "description": {
                        "type": "string",
                        "description": "New description"
                    },
                    "repo_url": {
                        "type": "string",
                        "description": "Repository URL (empty string clears it)"
                    },
                    "context_md": {
                        "type": "string",
                        "description": "Mission/context markdown shown at the top of the project context"
                    }
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="get_project_context",
            description="Get the live project snapshot: summary, milestones, features by status with subtasks and specs, "
                       "recent activity and the recommended coding workflow. "
                       "Call this at session start and after every change.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "format": {
                        "type": "string",
                        "enum": ["markdown", "json"],
                        "description": "markdown (default) or json"
                    }
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="get_changelog",
            description="Get a project's activity feed, newest first. Pass dedupe=true to hide near-duplicate entries.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "page": {
                        "type": "integer",
                        "description": "Page number (default: 1)"
                    },
                    "page_size": {
                        "type": "integer",
                        "description": "Items per page (default: 50, max: 200)"
                    },
                    "dedupe": {
                        "type": "boolean",
                        "description": "Hide repeats of the same event within 5 seconds (default: false)"
                    }
                },
                "required": ["project_id"]
            }
        ),
        # ============================================================================
        # Feature Tools
        # ============================================================================
        Tool(
            name="list_features",
            description="List features in board order (in progress first). Filter by project, status, priority or text.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "Filter by project UUID"
                    },
                    "status": {
                        "type": "string",
                        "enum": STATUS_VALUES,
                        "description": f"Filter by status. {_STATUS_HINT}"
                    },
                    "priority": {
                        "type": "string",
                        "enum": PRIORITY_VALUES,
                        "description": "Filter by priority"
                    },
                    "q": {
                        "type": "string",
                        "description": "Search in title, description and spec"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of features (default: 50, max: 100)"
                    }
                }
            }
        ),
        Tool(
            name="get_feature",
            description="Get a feature with its subtasks (IDs needed for update_feature) and full spec. "
                       "Errors: 404 (not found).",
            inputSchema={
                "type": "object",
                "properties": {
                    "feature_id": {
                        "type": "string",
                        "description": "UUID of the feature"
                    }
                },
                "required": ["feature_id"]
            }
        ),
        Tool(
            name="create_feature",
            description="Create a feature at the end of its status column, optionally with an initial subtask checklist.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the owning project"
                    },
                    "title": {
                        "type": "string",
                        "description": "Feature title"
                    },
                    "description": {
                        "type": "string",
                        "description": "Short description"
                    },
                    "spec": {
                        "type": "string",
                        "description": "Markdown specification"
                    },
                    "priority": {
                        "type": "string",
                        "enum": PRIORITY_VALUES,
                        "description": "Priority (default: medium)"
                    },
                    "status": {
                        "type": "string",
                        "enum": STATUS_VALUES,
                        "description": f"Initial status (default: backlog). {_STATUS_HINT}"
                    },
                    "milestone_id": {
                        "type": "string",
                        "description": "Milestone UUID in the same project"
                    },
                    "subtasks": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Initial subtask titles, in order"
                    }
                },
                "required": ["project_id", "title"]
            }
        ),
        Tool(
            name="update_feature",
            description="Update a feature and its checklist in one call. "
                       "Workflow: status=in_progress + branch_url when starting, subtasks=[{id, status: done}] as you go, "
                       "status=in_review + pr_url when the PR is open, then stop and wait for human review. "
                       "Subtasks mixes new titles (strings) and {id, status} objects; "
                       "if any referenced subtask is unknown nothing is applied (404).",
            inputSchema={
                "type": "object",
                "properties": {
                    "feature_id": {
                        "type": "string",
                        "description": "UUID of the feature to update"
                    },
                    "title": {
                        "type": "string",
                        "description": "New title"
                    },
                    "description": {
                        "type": "string",
                        "description": "New description"
                    },
                    "spec": {
                        "type": "string",
                        "description": "New markdown specification (replaces the old one)"
                    },
                    "priority": {
                        "type": "string",
                        "enum": PRIORITY_VALUES,
                        "description": "New priority"
                    },
                    "status": {
                        "type": "string",
                        "enum": STATUS_VALUES,
                        "description": f"New status; the feature moves to the end of that column. {_STATUS_HINT}"
                    },
                    "branch_url": {
                        "type": "string",
                        "description": "Branch URL (empty string clears it)"
                    },
                    "pr_url": {
                        "type": "string",
                        "description": "Pull request URL (empty string clears it)"
                    },
                    "milestone_id": {
                        "type": ["string", "null"],
                        "description": "Milestone UUID, or null to unassign"
                    },
                    "subtasks": {
                        "type": "array",
                        "items": {
                            "oneOf": [
                                {"type": "string", "description": "Title of a new subtask"},
                                {
                                    "type": "object",
                                    "properties": {
                                        "id": {"type": "string"},
                                        "status": {"type": "string", "enum": ["open", "done"]}
                                    },
                                    "required": ["id", "status"]
                                }
                            ]
                        },
                        "description": "New subtask titles and/or {id, status} changes"
                    }
                },
                "required": ["feature_id"]
            }
        ),
        # ============================================================================
        # Milestone Tools
        # ============================================================================
        Tool(
            name="list_milestones",
            description="List a project's milestones in roadmap order with their assigned features.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    }
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="create_milestone",
            description="Create a milestone at the end of the roadmap, or at a zero-based position. "
                       "Assign features with update_feature(milestone_id=...).",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "name": {
                        "type": "string",
                        "description": "Milestone name (e.g. 'v1.0')"
                    },
                    "description": {
                        "type": "string",
                        "description": "Optional description"
                    },
                    "target_date": {
                        "type": "string",
                        "description": "Optional target date (ISO 8601)"
                    },
                    "position": {
                        "type": "integer",
                        "description": "Optional zero-based roadmap position"
                    }
                },
                "required": ["project_id", "name"]
            }
        ),
        Tool(
            name="update_milestone",
            description="Update a milestone. Setting position moves it on the roadmap.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "milestone_id": {
                        "type": "string",
                        "description": "UUID of the milestone"
                    },
                    "name": {
                        "type": "string",
                        "description": "New name"
                    },
                    "description": {
                        "type": "string",
                        "description": "New description"
                    },
                    "target_date": {
                        "type": ["string", "null"],
                        "description": "New target date (ISO 8601), or null to clear"
                    },
                    "position": {
                        "type": "integer",
                        "description": "New zero-based roadmap position"
                    }
                },
                "required": ["project_id", "milestone_id"]
            }
        ),
        Tool(
            name="delete_milestone",
            description="Delete a milestone. Its features stay on the board, unassigned.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "milestone_id": {
                        "type": "string",
                        "description": "UUID of the milestone"
                    }
                },
                "required": ["project_id", "milestone_id"]
            }
        ),
    ]
