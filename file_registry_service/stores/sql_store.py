from datetime import timezone
from typing import List

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.future import select

from file_registry_service.database import make_engine, make_session_factory
from file_registry_service.exceptions import RecordNotFound, ShareLinkConflict, StorageIOError
from file_registry_service.logging_config import get_logger
from file_registry_service.models import Base, FileRecordRow
from file_registry_service.schemas import FileRecord
from file_registry_service.stores.base import MetadataStore

logger = get_logger(__name__)

def _to_record(row: FileRecordRow) -> FileRecord:
    created_at = row.created_at
    if created_at is not None and created_at.tzinfo is None:
        # SQLite hands timestamps back without an offset.
        created_at = created_at.replace(tzinfo=timezone.utc)
    return FileRecord(
        id=row.id,
        share_link=row.share_link,
        original_name=row.original_name,
        stored_name=row.stored_name,
        size=row.size or 0,
        mime_type=row.mime_type,
        category=row.category,
        uploader_id=row.uploader_id,
        uploader_name=row.uploader_name,
        upload_timestamp=created_at,
        download_count=row.downloads or 0,
        deleted=row.is_deleted,
    )

def _live():
    return FileRecordRow.is_deleted.is_(False)

class SqlMetadataStore(MetadataStore):
    """Relational backend: one row per file, tombstoned on delete."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = make_engine(database_url)
        self.session_factory = make_session_factory(self.engine)

    async def initialize(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created or already exist.")

    async def close(self) -> None:
        await self.engine.dispose()

    async def put(self, record: FileRecord) -> FileRecord:
        row = FileRecordRow(
            id=record.id,
            share_link=record.share_link,
            original_name=record.original_name,
            stored_name=record.stored_name,
            size=record.size,
            mime_type=record.mime_type,
            category=record.category,
            uploader_id=record.uploader_id,
            uploader_name=record.uploader_name,
            downloads=record.download_count,
            is_deleted=False,
            created_at=record.upload_timestamp,
        )
        async with self.session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ShareLinkConflict(f"Share link or id already in use for record {record.id}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageIOError(f"Could not insert record {record.id}: {e}") from e
        return record

    async def _fetch_one(self, *criteria) -> FileRecordRow:
        async with self.session_factory() as session:
            result = await session.execute(select(FileRecordRow).filter(_live(), *criteria))
            return result.scalars().first()

    async def _fetch_many(self, *criteria) -> List[FileRecord]:
        async with self.session_factory() as session:
            result = await session.execute(select(FileRecordRow).filter(_live(), *criteria))
            return [_to_record(row) for row in result.scalars().all()]

    async def get_by_share_link(self, share_link: str) -> FileRecord:
        row = await self._fetch_one(FileRecordRow.share_link == share_link)
        if row is None:
            raise RecordNotFound(f"No file for share link {share_link}")
        return _to_record(row)

    async def get_by_id(self, file_id: str) -> FileRecord:
        row = await self._fetch_one(FileRecordRow.id == file_id)
        if row is None:
            raise RecordNotFound(f"No file with id {file_id}")
        return _to_record(row)

    async def list_all(self) -> List[FileRecord]:
        return await self._fetch_many()

    async def list_by_category(self, category: str) -> List[FileRecord]:
        return await self._fetch_many(FileRecordRow.category == category)

    async def list_by_uploader(self, uploader_id: str) -> List[FileRecord]:
        return await self._fetch_many(FileRecordRow.uploader_id == uploader_id)

    async def increment_download(self, share_link: str) -> int:
        stmt = (
            update(FileRecordRow)
            .where(FileRecordRow.share_link == share_link, _live())
            .values(downloads=FileRecordRow.downloads + 1)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await session.rollback()
                    raise RecordNotFound(f"No file for share link {share_link}")
                count = await session.scalar(
                    select(FileRecordRow.downloads).filter(FileRecordRow.share_link == share_link)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageIOError(f"Could not count download for {share_link}: {e}") from e
        return count

    async def remove(self, file_id: str) -> FileRecord:
        async with self.session_factory() as session:
            try:
                # Write first so the transaction never upgrades a read lock.
                tombstone = await session.execute(
                    update(FileRecordRow)
                    .where(FileRecordRow.id == file_id, _live())
                    .values(is_deleted=True)
                    .execution_options(synchronize_session=False)
                )
                if tombstone.rowcount == 0:
                    await session.rollback()
                    raise RecordNotFound(f"No file with id {file_id}")
                result = await session.execute(select(FileRecordRow).filter(FileRecordRow.id == file_id))
                record = _to_record(result.scalars().one())
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageIOError(f"Could not delete record {file_id}: {e}") from e
        return record
