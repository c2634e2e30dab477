from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def _utcnow():
    return datetime.now(timezone.utc)

class FileRecordRow(Base):
    __tablename__ = "files"

    id = Column(String(32), primary_key=True)
    share_link = Column(String(64), nullable=False, unique=True)
    original_name = Column(String(255), nullable=False)
    stored_name = Column(String(64), nullable=False, unique=True)
    size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False, default="general", index=True)
    uploader_id = Column(String(64), nullable=True, index=True)
    uploader_name = Column(String(100), nullable=False)
    downloads = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<FileRecordRow(id={self.id}, name='{self.original_name}', share_link='{self.share_link}')>"
