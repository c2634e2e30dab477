from pathlib import Path
from typing import AsyncIterator, Optional, Union

import aiofiles
import aiofiles.os

from file_registry_service.exceptions import BlobNotFound, StorageIOError, UploadTooLarge
from file_registry_service.logging_config import get_logger

logger = get_logger(__name__)

BlobSource = Union[bytes, AsyncIterator[bytes]]

class LocalBlobStore:
    """Physical file bytes on local disk, one file per record."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        if not self.base_path.exists():
            logger.info(f"Creating file storage directory at {self.base_path}")
            self.base_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        if not name or name != Path(name).name or name in (".", ".."):
            raise ValueError(f"Invalid blob name: {name!r}")
        return self.base_path / name

    async def exists(self, name: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(name))

    async def save(self, source: BlobSource, name: str, max_bytes: Optional[int] = None) -> int:
        """Writes the blob and returns the number of bytes written.

        The bytes land in ``<name>.part`` and are renamed into place only once
        the source is exhausted, so a half-written upload is never visible
        under its final name. Any failure, cancellation included, removes the
        partial file.
        """
        final_path = self.path_for(name)
        part_path = final_path.with_name(f"{final_path.name}.part")
        written = 0
        try:
            async with aiofiles.open(part_path, 'wb') as out_file:
                if isinstance(source, (bytes, bytearray, memoryview)):
                    written = len(source)
                    if max_bytes is not None and written > max_bytes:
                        raise UploadTooLarge(max_bytes)
                    await out_file.write(source)
                else:
                    async for chunk in source:
                        written += len(chunk)
                        if max_bytes is not None and written > max_bytes:
                            raise UploadTooLarge(max_bytes)
                        await out_file.write(chunk)
            await aiofiles.os.replace(part_path, final_path)
        except BaseException as e:
            await self._discard(part_path)
            if isinstance(e, OSError):
                logger.exception(f"Error saving blob {name} to {final_path}")
                raise StorageIOError(f"Could not save blob {name}: {e}") from e
            raise
        logger.debug(f"Saved blob {name} ({written} bytes)")
        return written

    async def open(self, name: str):
        """Opens the blob for reading. The handle stays readable if the blob is deleted meanwhile."""
        path = self.path_for(name)
        try:
            return await aiofiles.open(path, 'rb')
        except FileNotFoundError as e:
            raise BlobNotFound(f"Blob {name} is not on disk") from e
        except OSError as e:
            logger.exception(f"Error opening blob {name} at {path}")
            raise StorageIOError(f"Could not open blob {name}: {e}") from e

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception(f"Could not remove partial blob {path}")

    async def delete(self, name: str) -> None:
        path = self.path_for(name)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as e:
            raise BlobNotFound(f"Blob {name} is not on disk") from e
        except OSError as e:
            logger.exception(f"Error deleting blob {name} at {path}")
            raise StorageIOError(f"Could not delete blob {name}: {e}") from e
        logger.debug(f"Deleted blob {name}")
