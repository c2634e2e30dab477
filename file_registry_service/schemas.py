from datetime import datetime, timezone
from typing import Optional, List, Dict, Literal

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_CATEGORY = "general"
ANONYMOUS = "anonymous"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Principal(BaseModel):
    id: Optional[str] = None
    name: str = ANONYMOUS
    is_admin: bool = False

    @property
    def is_anonymous(self) -> bool:
        return self.id is None

    def may_delete(self, record: "FileRecord") -> bool:
        if self.is_admin:
            return True
        return record.uploader_id is not None and record.uploader_id == self.id

class FileFields(BaseModel):
    id: str
    share_link: str
    original_name: str
    size: int = 0
    mime_type: str = "application/octet-stream"
    category: str = DEFAULT_CATEGORY
    uploader_name: str = ANONYMOUS
    upload_timestamp: datetime = EPOCH
    download_count: int = 0

    model_config = ConfigDict(from_attributes=True)

    @field_validator('size', 'download_count', mode='before')
    @classmethod
    def missing_number_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator('category', mode='before')
    @classmethod
    def missing_category_is_general(cls, v):
        return v or DEFAULT_CATEGORY

    @field_validator('uploader_name', mode='before')
    @classmethod
    def missing_uploader_is_anonymous(cls, v):
        return v or ANONYMOUS

    @field_validator('upload_timestamp', mode='before')
    @classmethod
    def missing_timestamp_is_epoch(cls, v):
        return EPOCH if v is None else v

class FileRecord(FileFields):
    stored_name: str
    uploader_id: Optional[str] = None
    deleted: bool = False

class FilePublic(FileFields):
    """Display projection of a record. Never carries the stored name."""

class UploadResult(BaseModel):
    id: str
    share_link: str
    original_name: str
    size: int
    category: str

class DownloadTicket(BaseModel):
    blob_path: str
    stored_name: str
    original_name: str
    mime_type: str
    download_count: int

class BulkDeleteOutcome(BaseModel):
    id: str
    original_name: str
    deleted: bool
    error: Optional[str] = None

class CategoryStats(BaseModel):
    count: int = 0
    total_size: int = 0

class ClassroomStats(BaseModel):
    total_files: int
    total_size: int
    total_downloads: int
    categories: Dict[str, CategoryStats]
    top_uploaders: Dict[str, int]
    recent_uploads: List[FilePublic]

class AdminStats(BaseModel):
    total_files: int
    total_downloads: int

class FileEvent(BaseModel):
    event: Literal["file_added", "file_deleted"]
    type: Literal["added", "deleted"]
    id: str
    file: Optional[FilePublic] = None

    @classmethod
    def added(cls, record: FileRecord) -> "FileEvent":
        return cls(event="file_added", type="added", id=record.id,
                   file=FilePublic.model_validate(record))

    @classmethod
    def deleted(cls, file_id: str) -> "FileEvent":
        return cls(event="file_deleted", type="deleted", id=file_id)
