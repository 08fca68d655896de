#!/usr/bin/env python3
"""
Export Error Taxonomy

Every failure the exporter can report carries a short machine-readable
category next to its human-readable message, so the CLI (and scripts that
drive it) can tell a missing archive apart from a typo in a folder name.
"""

from typing import List, Optional


class ExportError(Exception):
    """Base class for all exporter errors"""

    category = "export_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"


class NotAccessibleError(ExportError):
    """Mailbox, archive root or named root folder cannot be bound (fatal)"""

    category = "not_accessible"

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class SubtreeUnavailableError(ExportError):
    """Child folders of a single folder could not be listed (recoverable)"""

    category = "subtree_unavailable"

    def __init__(self, message: str, folder_path: Optional[str] = None):
        super().__init__(message)
        self.folder_path = folder_path


class TargetNotFoundError(ExportError):
    """Requested folder does not match any discovered folder"""

    category = "target_not_found"

    def __init__(self, message: str, available: Optional[List[str]] = None):
        super().__init__(message)
        self.available = list(available or [])


class InvalidArgumentError(ExportError):
    """Caller error detected before any remote call is made"""

    category = "invalid_argument"


class RemoteFailureError(ExportError):
    """Network or API error while talking to the mail backend"""

    category = "remote_failure"

    def __init__(self, message: str, status_code: Optional[int] = None, response_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        # EWS ResponseCode (e.g. ErrorItemNotFound) when the backend is EWS
        self.response_code = response_code


class ExportCancelledError(ExportError):
    """Caller asked to abort a running discovery or export"""

    category = "cancelled"
