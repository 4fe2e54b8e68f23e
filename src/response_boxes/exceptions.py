"""Custom exceptions for Response Boxes."""


class ResponseBoxesError(Exception):
    """Base exception for all Response Boxes errors."""

    pass


class StoreError(ResponseBoxesError):
    """Raised when the event store cannot be used for projection or appends."""

    def __init__(self, message: str, store_path: str | None = None):
        self.store_path = store_path
        if store_path:
            message = f"{message}: {store_path}"
        super().__init__(message)


class CorruptStoreError(StoreError):
    """Raised when the store exists but no line parses as a JSON object."""

    pass


class ArrayShapedStoreError(StoreError):
    """Raised when the store is a single JSON array instead of JSON lines."""

    pass


class UnsupportedSchemaError(ResponseBoxesError):
    """Raised when the store contains events newer than this projector understands."""

    def __init__(self, max_version: int, supported_version: int):
        self.max_version = max_version
        self.supported_version = supported_version
        super().__init__(
            f"Event schema version {max_version} is newer than supported "
            f"version {supported_version}"
        )
