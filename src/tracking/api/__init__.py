"""Tracking domain API package."""

from tracking.api.routes import tracked_order_router

__all__ = ["tracked_order_router"]
