"""Workflow nodes."""
