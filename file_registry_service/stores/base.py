from abc import ABC, abstractmethod
from typing import List

from file_registry_service.schemas import FileRecord

class MetadataStore(ABC):
    """Durable mapping from share link to file record.

    Every read excludes deleted records. ``put`` raises ``ShareLinkConflict``
    when the share link (or id) is taken, lookups and ``remove`` raise
    ``RecordNotFound``, and ``increment_download`` must not lose updates
    under concurrent callers.
    """

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def put(self, record: FileRecord) -> FileRecord:
        ...

    @abstractmethod
    async def get_by_share_link(self, share_link: str) -> FileRecord:
        ...

    @abstractmethod
    async def get_by_id(self, file_id: str) -> FileRecord:
        ...

    @abstractmethod
    async def list_all(self) -> List[FileRecord]:
        ...

    async def list_by_category(self, category: str) -> List[FileRecord]:
        return [record for record in await self.list_all() if record.category == category]

    async def list_by_uploader(self, uploader_id: str) -> List[FileRecord]:
        return [record for record in await self.list_all() if record.uploader_id == uploader_id]

    @abstractmethod
    async def increment_download(self, share_link: str) -> int:
        """Adds one to the download counter and returns the new value."""

    @abstractmethod
    async def remove(self, file_id: str) -> FileRecord:
        """Removes or tombstones the record and returns it."""
