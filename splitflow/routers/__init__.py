"""API router package."""

from splitflow.routers import finance, notifications, projects

__all__ = ["finance", "notifications", "projects"]
