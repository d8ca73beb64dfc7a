"""Configuration for the workspace agent."""

from workspace_agent.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
