"""PM Board core - projects, features, milestones and changelog."""

__version__ = "1.0.0"
