"""Adapters for the remote time-management portal."""

from timebooker.portal.rexx import RexxPortal

__all__ = ["RexxPortal"]
