"""
API router exports.
"""

from parkrun_notifier.api.routers.inbound_email import router as inbound_email_router

__all__ = ["inbound_email_router"]
