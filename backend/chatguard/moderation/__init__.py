"""Moderation package integration helpers exposed to the application."""

from chatguard.moderation.api import router
from chatguard.moderation.domain.container import configure, configure_postgres, shutdown

__all__ = ["router", "configure", "configure_postgres", "shutdown"]
