class BookTrackerError(Exception):
    """Base exception for book tracker errors"""
    pass


class RemoteStoreError(BookTrackerError):
    """Raised when the remote snapshot store cannot be reached or rejects a request"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LegacyMigrationError(BookTrackerError):
    """Raised when a legacy local blob cannot be migrated"""
    pass
