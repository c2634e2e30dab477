from datetime import datetime, timezone
from typing import Dict, Iterable

from file_registry_service.schemas import (
    ANONYMOUS, DEFAULT_CATEGORY, EPOCH, AdminStats, CategoryStats, ClassroomStats, FilePublic, FileRecord
)

def _number(value) -> int:
    return value or 0

def by_recency(record: FileRecord) -> datetime:
    timestamp = record.upload_timestamp or EPOCH
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp

def aggregate(records: Iterable[FileRecord], recent_limit: int = 10) -> ClassroomStats:
    files = [record for record in records if not record.deleted]

    categories: Dict[str, CategoryStats] = {}
    top_uploaders: Dict[str, int] = {}
    for record in files:
        category = categories.setdefault(record.category or DEFAULT_CATEGORY, CategoryStats())
        category.count += 1
        category.total_size += _number(record.size)

        uploader = record.uploader_name or ANONYMOUS
        top_uploaders[uploader] = top_uploaders.get(uploader, 0) + 1

    recent = sorted(files, key=by_recency, reverse=True)[:max(recent_limit, 0)]

    return ClassroomStats(
        total_files=len(files),
        total_size=sum(_number(record.size) for record in files),
        total_downloads=sum(_number(record.download_count) for record in files),
        categories=categories,
        top_uploaders=top_uploaders,
        recent_uploads=[FilePublic.model_validate(record) for record in recent],
    )

def admin_summary(stats: ClassroomStats) -> AdminStats:
    return AdminStats(total_files=stats.total_files, total_downloads=stats.total_downloads)
