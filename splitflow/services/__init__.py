"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "AnalyticsService": "splitflow.services.analytics_service",
    "ExportService": "splitflow.services.export_service",
    "LedgerService": "splitflow.services.ledger_service",
    "NotificationService": "splitflow.services.notification_service",
    "ProjectService": "splitflow.services.project_service",
    "SpendingService": "splitflow.services.spending_service",
    "SupabaseService": "splitflow.services.common",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
