"""
Route handlers wired up by tinyhttp.app.create_app().
"""

from .basic import index, echo, user_agent, WELCOME_MESSAGE
from .files import FileHandler

__all__ = [
    "index",
    "echo",
    "user_agent",
    "WELCOME_MESSAGE",
    "FileHandler",
]
