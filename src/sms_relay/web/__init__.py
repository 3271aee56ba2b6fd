"""HTTP surface for push delivery, device events and preferences."""

from .app import apply_preferences_update, create_app

__all__ = ["apply_preferences_update", "create_app"]
