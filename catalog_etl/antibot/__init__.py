"""Request disguise helpers shared by the collectors."""

from .user_agent import UserAgentPool, browser_headers

__all__ = [
    "UserAgentPool",
    "browser_headers",
]
