"""Dependent-service integration."""

from fsmo_orchestrator.services.notifier import ServiceNotifier

__all__ = ["ServiceNotifier"]
