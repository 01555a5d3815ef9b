"""
API Routes
==========

Route modules for the setup assistant service.
"""

from setup_assistant.api.routes.setup_assistant import router as setup_assistant_router

__all__ = ["setup_assistant_router"]
