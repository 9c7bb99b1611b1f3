"""Monitoring and observability package."""
from .logging import bind_progress_context, setup_logging
from .metrics import metrics

__all__ = ["metrics", "setup_logging", "bind_progress_context"]
