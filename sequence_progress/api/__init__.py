"""HTTP surface for the progress engine."""
from .main import create_app

__all__ = ["create_app"]
