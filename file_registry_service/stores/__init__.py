from file_registry_service.config import Settings
from file_registry_service.stores.base import MetadataStore
from file_registry_service.stores.json_store import JsonMetadataStore
from file_registry_service.stores.sql_store import SqlMetadataStore

def build_metadata_store(settings: Settings) -> MetadataStore:
    if settings.METADATA_BACKEND == "sql":
        return SqlMetadataStore(settings.DATABASE_URL)
    return JsonMetadataStore(settings.METADATA_JSON_PATH)

__all__ = ["MetadataStore", "JsonMetadataStore", "SqlMetadataStore", "build_metadata_store"]
