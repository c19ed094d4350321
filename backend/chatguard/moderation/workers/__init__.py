"""Moderation worker exports."""

from .blocked_url_writer import BlockedUrlWriter

__all__ = ["BlockedUrlWriter"]
