from typing import Optional


class SyncStateError(Exception):
    """The base class for all state sync exceptions."""


class CmdError(SyncStateError):
    """Denote error in running cmd"""


class ConfigLoadError(SyncStateError):
    """Denote an unreadable configuration or settings file"""


class StateSyncError(SyncStateError):
    """Denote a snapshot that cannot be restored"""

    def __init__(
        self, message: str, snapshot_id: str, cause: Optional[BaseException] = None
    ) -> None:
        super().__init__(message)
        self.snapshot_id = snapshot_id
        self.cause = cause
