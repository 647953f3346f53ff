"""API routers for PM Board."""

from . import agent, attachments, changelog, features, milestones, projects, subtasks

__all__ = ["agent", "attachments", "changelog", "features", "milestones", "projects", "subtasks"]
