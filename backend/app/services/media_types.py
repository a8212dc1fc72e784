"""
Media type table for uploads.

The extension decides the media type; the media type decides the size
limit, the default MIME type and the primary storage destination.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

MB = 1024 * 1024
GB = 1024 * MB

UNKNOWN = "unknown"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class MediaTypeSpec:
    extensions: Tuple[str, ...]
    mime_types: Tuple[str, ...]
    size_limit: int


MEDIA_TYPES: Dict[str, MediaTypeSpec] = {
    "image": MediaTypeSpec(
        extensions=(".png", ".jpg", ".gif", ".jpeg", ".bmp", ".svg", ".webp"),
        mime_types=(
            "image/jpeg",
            "image/png",
            "image/gif",
            "image/svg+xml",
            "image/webp",
            "image/bmp",
        ),
        size_limit=50 * MB,
    ),
    "video": MediaTypeSpec(
        extensions=(".mp4", ".avi", ".mov", ".wmv", ".flv", ".mkv", ".webm"),
        mime_types=(
            "video/mp4",
            "video/x-msvideo",
            "video/quicktime",
            "video/x-ms-wmv",
            "video/x-flv",
            "video/x-matroska",
            "video/webm",
        ),
        size_limit=2 * GB,
    ),
    "audio": MediaTypeSpec(
        extensions=(".mp3", ".wav", ".ogg", ".wma", ".aac", ".flac", ".alac"),
        mime_types=(
            "audio/mpeg",
            "audio/wav",
            "audio/ogg",
            "audio/x-ms-wma",
            "audio/aac",
            "audio/flac",
            "audio/alac",
        ),
        size_limit=12 * MB,
    ),
    "file": MediaTypeSpec(
        extensions=(".pdf", ".doc", ".docx", ".xls", ".xlsx", ".csv", ".txt", ".json", ".xml"),
        mime_types=(
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "text/csv",
            "text/plain",
            "application/json",
            "application/xml",
        ),
        size_limit=150 * MB,
    ),
}


def get_media_type(extension: str) -> str:
    """'.JPG' → 'image'; unrecognized extensions → 'unknown'."""
    ext = extension.lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    for media_type, info in MEDIA_TYPES.items():
        if ext in info.extensions:
            return media_type
    return UNKNOWN


def media_type_for_filename(filename: str) -> str:
    return get_media_type(Path(filename).suffix)


def get_mime_types(media_type: str) -> List[str]:
    info = MEDIA_TYPES.get(media_type)
    return list(info.mime_types) if info else []


def get_mime_type(media_type: str) -> str:
    """Content-Type used when serving a stored file of this media type."""
    mime_types = get_mime_types(media_type)
    return mime_types[0] if mime_types else DEFAULT_MIME_TYPE


def get_file_size_limit(media_type: str) -> int:
    info = MEDIA_TYPES.get(media_type)
    return info.size_limit if info else 0
