"""WhatsApp Web relay microservice."""

from .api import create_app
from .session_manager import SessionManager

__all__ = ["create_app", "SessionManager"]
