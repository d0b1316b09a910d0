"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to MIME types for the Content-Type header of file
responses.

=============================================================================
WHY MIME TYPES MATTER FOR STREAMING
=============================================================================

A media element (<video>, <audio>, a TV app, VLC) decides whether it can
play a resource from its Content-Type BEFORE it asks for byte ranges:

    ┌────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │  GET /movies/trailer.mp4          → Content-Type: video/mp4        │
    │      └── player: "I can decode this, let me seek with Range"       │
    │                                                                     │
    │  GET /movies/trailer.xyz          → application/octet-stream       │
    │      └── browser: "unknown binary, offer a download"               │
    │                                                                     │
    └────────────────────────────────────────────────────────────────────┘

Lookup is by extension only, case-insensitive. Files without an
extension, or with an extension we don't know, get the generic binary
type.

=============================================================================
"""

from pathlib import Path
from typing import Optional, Union


MIME_TYPES = {
    # -------------------------------------------------------------------------
    # TEXT / WEB
    # -------------------------------------------------------------------------
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".vtt": "text/vtt",            # WebVTT subtitles
    ".srt": "application/x-subrip",

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".bmp": "image/bmp",

    # -------------------------------------------------------------------------
    # FONTS
    # -------------------------------------------------------------------------
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",

    # -------------------------------------------------------------------------
    # AUDIO
    # -------------------------------------------------------------------------
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".flac": "audio/flac",
    ".opus": "audio/opus",

    # -------------------------------------------------------------------------
    # VIDEO
    # -------------------------------------------------------------------------
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".webm": "video/webm",
    ".ogv": "video/ogg",
    ".mkv": "video/x-matroska",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".ts": "video/mp2t",

    # -------------------------------------------------------------------------
    # PLAYLISTS
    # -------------------------------------------------------------------------
    ".m3u": "audio/x-mpegurl",
    ".m3u8": "application/vnd.apple.mpegurl",

    # -------------------------------------------------------------------------
    # DOCUMENTS / ARCHIVES
    # -------------------------------------------------------------------------
    ".pdf": "application/pdf",
    ".zip": "application/zip",
}

# "I don't know what this is, treat as binary"
DEFAULT_MIME_TYPE = "application/octet-stream"


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Args:
        path: File path or bare file name.
        default: Type to use for unknown extensions.
                 Uses application/octet-stream if not specified.

    Returns:
        The MIME type string.

    Examples:
        >>> get_mime_type("index.html")
        'text/html'

        >>> get_mime_type("/media/Movie.MP4")
        'video/mp4'

        >>> get_mime_type("README")
        'application/octet-stream'
    """
    if isinstance(path, str):
        path = Path(path)

    # Path(".bashrc").suffix is "", so dotfiles fall through to the default
    extension = path.suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)
