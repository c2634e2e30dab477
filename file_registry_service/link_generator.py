import hashlib
import re
import secrets
import time
import uuid
from pathlib import Path

_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,16}$")

def generate_share_link() -> str:
    sha256_hash = hashlib.sha256()
    sha256_hash.update(uuid.uuid4().bytes)
    sha256_hash.update(secrets.token_bytes(16))
    sha256_hash.update(str(time.time_ns()).encode("ascii"))
    return sha256_hash.hexdigest()

def new_file_id() -> str:
    return uuid.uuid4().hex

def stored_name_for(file_id: str, original_name: str) -> str:
    # Only a short alphanumeric suffix of the user's name reaches the disk.
    extension = Path(original_name or "").suffix
    if not _SAFE_EXTENSION.match(extension):
        extension = ""
    return f"{file_id}{extension.lower()}"
