"""
Error taxonomy shared by the core and the HTTP layer.

Every error carries the HTTP status it maps to; main.py turns them into the
{"ok": false, "error": ...} envelope.
"""


class DockError(Exception):
    """Base class for all expected failures."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DockError):
    """Missing or malformed request fields, oversize text."""

    status_code = 400


class PayloadTooLargeError(ValidationError):
    status_code = 413


class NotFoundError(DockError):
    """Unknown session, tool server, skill or preset."""

    status_code = 404


class UpstreamError(DockError):
    """A model or remote tool call failed, including timeouts."""

    status_code = 424


class ToolExecutionError(DockError):
    """A skill handler failed. Converted to a tool-result payload inside a turn."""

    status_code = 400


class InternalError(DockError):
    """Unexpected fault. The message is logged, never sent to clients."""

    status_code = 500


class StorageError(InternalError):
    """A durable snapshot could not be written."""
