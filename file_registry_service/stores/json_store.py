import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import aiofiles
import aiofiles.os
from pydantic import TypeAdapter, ValidationError

from file_registry_service.exceptions import RecordNotFound, ShareLinkConflict, StorageIOError
from file_registry_service.logging_config import get_logger
from file_registry_service.schemas import FileRecord
from file_registry_service.stores.base import MetadataStore

logger = get_logger(__name__)

_document_adapter = TypeAdapter(Dict[str, FileRecord])

class JsonMetadataStore(MetadataStore):
    """Whole mapping in one JSON document, keyed by share link.

    The document is read on every operation and rewritten on every mutation.
    All of it happens under a single lock, so a writer never saves over
    entries it has not seen. Saves go through a temp file and a rename.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"JSON metadata document at {self.path}")

    async def _load(self) -> Dict[str, FileRecord]:
        if not await aiofiles.os.path.exists(self.path):
            return {}
        try:
            async with aiofiles.open(self.path, 'rb') as f:
                raw = await f.read()
        except OSError as e:
            raise StorageIOError(f"Could not read metadata document {self.path}: {e}") from e

        try:
            document = raw.decode('utf-8')
            if not document.strip():
                return {}
            return _document_adapter.validate_json(document)
        except (ValidationError, ValueError) as e:
            await self._quarantine(e)
            return {}

    async def _quarantine(self, cause: Exception) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        quarantine_path = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        logger.error(
            f"Metadata document {self.path} is unreadable, continuing with an empty mapping. "
            f"Original moved to {quarantine_path}. Cause: {cause}"
        )
        try:
            await aiofiles.os.replace(self.path, quarantine_path)
        except OSError:
            logger.exception(f"Could not move corrupt metadata document {self.path} aside")

    async def _save(self, database: Dict[str, FileRecord]) -> None:
        payload = json.dumps(
            {key: record.model_dump(mode="json") for key, record in database.items()},
            indent=2,
        )
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            logger.exception(f"Error saving metadata document {self.path}")
            raise StorageIOError(f"Could not save metadata document {self.path}: {e}") from e

    @staticmethod
    def _find_by_id(database: Dict[str, FileRecord], file_id: str):
        for share_link, record in database.items():
            if record.id == file_id and not record.deleted:
                return share_link, record
        return None, None

    async def put(self, record: FileRecord) -> FileRecord:
        async with self._lock:
            database = await self._load()
            if record.share_link in database:
                raise ShareLinkConflict(f"Share link already in use for record {database[record.share_link].id}")
            if any(existing.id == record.id for existing in database.values()):
                raise ShareLinkConflict(f"Record id {record.id} already in use")
            database[record.share_link] = record
            await self._save(database)
            return record

    async def get_by_share_link(self, share_link: str) -> FileRecord:
        async with self._lock:
            database = await self._load()
        record = database.get(share_link)
        if record is None or record.deleted:
            raise RecordNotFound(f"No file for share link {share_link}")
        return record

    async def get_by_id(self, file_id: str) -> FileRecord:
        async with self._lock:
            database = await self._load()
        _, record = self._find_by_id(database, file_id)
        if record is None:
            raise RecordNotFound(f"No file with id {file_id}")
        return record

    async def list_all(self) -> List[FileRecord]:
        async with self._lock:
            database = await self._load()
        return [record for record in database.values() if not record.deleted]

    async def increment_download(self, share_link: str) -> int:
        async with self._lock:
            database = await self._load()
            record = database.get(share_link)
            if record is None or record.deleted:
                raise RecordNotFound(f"No file for share link {share_link}")
            record.download_count = (record.download_count or 0) + 1
            await self._save(database)
            return record.download_count

    async def remove(self, file_id: str) -> FileRecord:
        async with self._lock:
            database = await self._load()
            share_link, record = self._find_by_id(database, file_id)
            if record is None:
                raise RecordNotFound(f"No file with id {file_id}")
            del database[share_link]
            await self._save(database)
            return record
