"""
Exception types shared across the agent.
"""


class AgentError(Exception):
    """Base class for all agent errors."""


class ConfigError(AgentError):
    pass


class ApiError(AgentError):
    """HTTP failure, unreadable body, or an ``ok=false`` answer from the server."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class RegistrationError(ApiError):
    pass


class DeviceError(AgentError):
    pass


class Cancelled(AgentError):
    """The stop signal was observed at a suspension point."""
