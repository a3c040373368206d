"""
Error taxonomy for Wayfinder.

Tool-level errors (ValidationError, ToolExecutionError, ProviderUnavailableError,
ToolTimeoutError) are raised inside the dispatcher and converted to Failure results
there; they never reach the caller. ModelError is the only one that aborts a request.
"""


class WayfinderError(Exception):
    pass


class ValidationError(WayfinderError):
    """Tool arguments are malformed or a required argument is missing."""


class ToolExecutionError(WayfinderError):
    """A built-in tool handler raised."""


class ProviderUnavailableError(WayfinderError):
    """The external tool provider owning a tool is not connected."""


class ToolTimeoutError(WayfinderError, TimeoutError):
    """A tool call exceeded its time bound."""


class ModelError(WayfinderError):
    """The language-model call itself failed. Not recoverable inside a request."""
