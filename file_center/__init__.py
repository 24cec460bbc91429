"""Store perennial and temporary files in MongoDB."""
from .config import (
    DEFAULT_FILE_SIZE_THRESHOLD,
    DEFAULT_MIME_TYPE,
    DEFAULT_TEMPORARY_FILE_LIFETIME,
    MAX_FILE_SIZE_THRESHOLD,
    Settings,
    get_settings,
)
from .db.mongo import COLLECTION_FILES_CHUNKS_NAME, COLLECTION_FILES_NAME, COLLECTION_SETTINGS_NAME
from .errors import (
    DatabaseTooNew,
    FileCenterError,
    FileSizeThresholdError,
    Inconsistent,
    InvalidToken,
    NotFound,
    PayloadTooLarge,
    StoreUnavailable,
    VersionError,
)
from .models import FileData, FileItem, StorageShape
from .security.id_token import IdTokenCodec
from .services.file_center import FileCenter

__all__ = [
    "COLLECTION_FILES_CHUNKS_NAME",
    "COLLECTION_FILES_NAME",
    "COLLECTION_SETTINGS_NAME",
    "DEFAULT_FILE_SIZE_THRESHOLD",
    "DEFAULT_MIME_TYPE",
    "DEFAULT_TEMPORARY_FILE_LIFETIME",
    "MAX_FILE_SIZE_THRESHOLD",
    "DatabaseTooNew",
    "FileCenter",
    "FileCenterError",
    "FileData",
    "FileItem",
    "FileSizeThresholdError",
    "IdTokenCodec",
    "Inconsistent",
    "InvalidToken",
    "NotFound",
    "PayloadTooLarge",
    "Settings",
    "StorageShape",
    "StoreUnavailable",
    "VersionError",
    "get_settings",
]
