from typing import List, Optional

from file_registry_service.blob_store import BlobSource, LocalBlobStore
from file_registry_service.broadcaster import Broadcaster
from file_registry_service.exceptions import (
    BlobNotFound, Forbidden, IncompleteUpload, Inconsistent, RecordNotFound,
    RegistryError, ShareLinkConflict, StorageIOError
)
from file_registry_service.link_generator import generate_share_link, new_file_id, stored_name_for
from file_registry_service.logging_config import get_logger
from file_registry_service.schemas import (
    DEFAULT_CATEGORY, BulkDeleteOutcome, ClassroomStats, DownloadTicket, FileEvent,
    FilePublic, FileRecord, Principal, UploadResult, utcnow
)
from file_registry_service.stats import aggregate, by_recency
from file_registry_service.stores.base import MetadataStore

logger = get_logger(__name__)

NOT_FOUND_OR_FORBIDDEN = "File not found or not authorized"

class FileRegistry:
    """Keeps blobs, metadata and connected viewers in step.

    Uploads write the blob before the metadata and deletes remove the blob
    before the metadata, so committed metadata never points at a blob that
    was not fully written. Events are published right after the committing
    store call returns, with no suspension point in between.
    """

    def __init__(
        self,
        store: MetadataStore,
        blobs: LocalBlobStore,
        broadcaster: Broadcaster,
        max_upload_bytes: Optional[int] = None,
        share_link_attempts: int = 5,
        public_base_url: Optional[str] = None,
        recent_limit: int = 10,
    ):
        self.store = store
        self.blobs = blobs
        self.broadcaster = broadcaster
        self.max_upload_bytes = max_upload_bytes
        self.share_link_attempts = max(share_link_attempts, 1)
        self.public_base_url = public_base_url
        self.recent_limit = recent_limit

    def share_url(self, share_link: str, base_url: Optional[str] = None) -> str:
        base = self.public_base_url or base_url or ""
        return f"{base.rstrip('/')}/share/{share_link}"

    async def add_file(
        self,
        source: BlobSource,
        original_name: str,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
        category: Optional[str] = None,
        uploader: Optional[Principal] = None,
        base_url: Optional[str] = None,
    ) -> UploadResult:
        uploader = uploader or Principal()
        file_id = new_file_id()
        stored_name = stored_name_for(file_id, original_name)
        logger.info(f"Upload of '{original_name}' by {uploader.name} stored as {stored_name}")

        written = await self.blobs.save(source, stored_name, max_bytes=self.max_upload_bytes)

        try:
            if size is not None and size != written:
                raise IncompleteUpload(f"Expected {size} bytes for '{original_name}', received {written}")
            record = await self._insert(
                id=file_id,
                original_name=original_name,
                stored_name=stored_name,
                size=written,
                mime_type=mime_type or "application/octet-stream",
                category=category or DEFAULT_CATEGORY,
                uploader_id=uploader.id,
                uploader_name=uploader.name,
                upload_timestamp=utcnow(),
            )
        except BaseException as e:
            if not await self._remove_orphan(stored_name, file_id) and isinstance(e, Exception):
                raise StorageIOError(f"Upload {file_id} failed and blob {stored_name} is left behind") from e
            raise

        self.broadcaster.publish(FileEvent.added(record))
        logger.info(f"Saved '{record.original_name}' (ID: {record.id}, {record.size} bytes, category: {record.category})")

        return UploadResult(
            id=record.id,
            share_link=self.share_url(record.share_link, base_url),
            original_name=record.original_name,
            size=record.size,
            category=record.category,
        )

    async def _insert(self, **fields) -> FileRecord:
        for attempt in range(1, self.share_link_attempts + 1):
            record = FileRecord(share_link=generate_share_link(), **fields)
            try:
                return await self.store.put(record)
            except ShareLinkConflict:
                logger.warning(
                    f"Share link collision for {record.id} (attempt {attempt}/{self.share_link_attempts}), generating a new one"
                )
        raise StorageIOError(f"Could not mint a unique share link after {self.share_link_attempts} attempts")

    async def _remove_orphan(self, stored_name: str, file_id: str) -> bool:
        try:
            await self.blobs.delete(stored_name)
        except BlobNotFound:
            pass
        except StorageIOError:
            logger.error(f"Upload {file_id} failed and its blob {stored_name} could not be removed. Delete it manually.")
            return False
        logger.info(f"Removed blob {stored_name} of failed upload {file_id}")
        return True

    async def list_files(self, category: Optional[str] = None) -> List[FilePublic]:
        if category:
            records = await self.store.list_by_category(category)
        else:
            records = await self.store.list_all()
        records.sort(key=by_recency, reverse=True)
        return [FilePublic.model_validate(record) for record in records]

    async def get_file_info(self, share_link: str) -> FilePublic:
        return FilePublic.model_validate(await self.store.get_by_share_link(share_link))

    async def delete_file(self, file_id: str, principal: Principal) -> None:
        try:
            record = await self.store.get_by_id(file_id)
        except RecordNotFound:
            logger.warning(f"Delete of unknown file {file_id} by {principal.name}")
            raise RecordNotFound(NOT_FOUND_OR_FORBIDDEN) from None

        if not principal.may_delete(record):
            logger.warning(f"{principal.name} ({principal.id}) may not delete file {file_id}")
            raise Forbidden(NOT_FOUND_OR_FORBIDDEN)

        await self._delete_record(record)

    async def _delete_record(self, record: FileRecord) -> None:
        try:
            await self.blobs.delete(record.stored_name)
        except BlobNotFound:
            logger.error(
                f"Inconsistency: blob {record.stored_name} of file {record.id} was already missing, "
                f"removing its metadata anyway"
            )

        try:
            await self.store.remove(record.id)
        except StorageIOError as e:
            logger.error(
                f"Inconsistency: blob {record.stored_name} of file {record.id} (share link {record.share_link}) "
                f"was deleted but its metadata could not be removed: {e}"
            )
            raise Inconsistent(f"File {record.id} lost its blob but kept its metadata") from e

        self.broadcaster.publish(FileEvent.deleted(record.id))
        logger.info(f"Deleted '{record.original_name}' (ID: {record.id})")

    async def record_download(self, share_link: str) -> DownloadTicket:
        record = await self.store.get_by_share_link(share_link)

        if not await self.blobs.exists(record.stored_name):
            logger.error(
                f"File {record.id} found in metadata (stored name: {record.stored_name}) "
                f"but not in storage. Inconsistency!"
            )
            raise BlobNotFound(f"Physical file for share link {share_link} is missing")

        count = await self.store.increment_download(share_link)
        logger.info(f"Download of '{record.original_name}' (ID: {record.id}), count now {count}")

        return DownloadTicket(
            blob_path=str(self.blobs.path_for(record.stored_name)),
            stored_name=record.stored_name,
            original_name=record.original_name,
            mime_type=record.mime_type,
            download_count=count,
        )

    async def open_download(self, ticket: DownloadTicket):
        try:
            return await self.blobs.open(ticket.stored_name)
        except BlobNotFound:
            logger.error(f"Blob {ticket.stored_name} of '{ticket.original_name}' was removed before it could be served")
            raise

    async def delete_files_for_principal(self, principal_id: str) -> List[BulkDeleteOutcome]:
        records = await self.store.list_by_uploader(principal_id)
        logger.info(f"Removing {len(records)} file(s) uploaded by {principal_id}")

        outcomes = []
        for record in records:
            try:
                await self._delete_record(record)
            except RegistryError as e:
                logger.error(f"Could not remove file {record.id} of {principal_id}: {e}")
                outcomes.append(BulkDeleteOutcome(
                    id=record.id, original_name=record.original_name, deleted=False, error=str(e)
                ))
            else:
                outcomes.append(BulkDeleteOutcome(
                    id=record.id, original_name=record.original_name, deleted=True
                ))
        return outcomes

    async def statistics(self, recent_limit: Optional[int] = None) -> ClassroomStats:
        limit = self.recent_limit if recent_limit is None else recent_limit
        return aggregate(await self.store.list_all(), recent_limit=limit)
