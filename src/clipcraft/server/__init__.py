"""HTTP surface."""

from clipcraft.server.app import create_app

__all__ = ["create_app"]
