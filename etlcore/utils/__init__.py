"""Shared utility functions for the pipeline engine."""

from .sanitization import sanitize_error_message

__all__ = ["sanitize_error_message"]
