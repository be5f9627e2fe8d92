"""HTTP surface: consumer evaluation and admin flag management."""

from featuregate.api.app import build_service, create_app

__all__ = ["build_service", "create_app"]
