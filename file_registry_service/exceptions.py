class RegistryError(Exception):
    """Base class for every failure the file registry reports to its callers."""


class ShareLinkConflict(RegistryError):
    """A record with the same share link or id is already stored."""


class NotFound(RegistryError):
    pass


class RecordNotFound(NotFound):
    pass


class BlobNotFound(NotFound):
    """Metadata exists but the physical file is gone."""


class Forbidden(RegistryError):
    pass


class StorageIOError(RegistryError):
    """Blob or metadata persistence failed."""


class IncompleteUpload(StorageIOError):
    pass


class UploadTooLarge(RegistryError):
    def __init__(self, limit_bytes: int):
        super().__init__(f"Upload exceeds the {limit_bytes} byte limit")
        self.limit_bytes = limit_bytes


class Inconsistent(StorageIOError):
    """Blob and metadata disagree in a way that needs manual reconciliation."""
