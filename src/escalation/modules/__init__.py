"""Escalation Modules - All application modules."""

from escalation.modules.causes import router as causes_router

__all__ = [
    "causes_router",
]
