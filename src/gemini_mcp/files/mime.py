"""Extension-based MIME type detection for fetched and local files."""

from pathlib import PurePosixPath

DEFAULT_MIME_TYPE = "application/octet-stream"

EXTENSION_TO_MIME: dict[str, str] = {
    ".txt": "text/plain",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".mp3": "audio/mpeg",
    ".mp4": "video/mp4",
    ".wav": "audio/wav",
    ".doc": "application/msword",
    ".docx": "application/msword",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.ms-excel",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.ms-powerpoint",
    ".zip": "application/zip",
    ".csv": "text/csv",
    ".md": "text/markdown",
    # Source code is sent as plain text
    ".go": "text/plain",
    ".py": "text/plain",
    ".java": "text/plain",
    ".c": "text/plain",
    ".cpp": "text/plain",
    ".h": "text/plain",
    ".hpp": "text/plain",
    ".rb": "text/plain",
    ".php": "text/plain",
}


def get_mime_type(path: str) -> str:
    """Return the MIME type for ``path`` by extension, case-insensitively."""
    return EXTENSION_TO_MIME.get(PurePosixPath(path).suffix.lower(), DEFAULT_MIME_TYPE)
