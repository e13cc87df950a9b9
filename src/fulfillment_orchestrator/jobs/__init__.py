"""Standalone background jobs."""
