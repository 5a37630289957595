"""Shared utilities: structured logging and configuration."""
