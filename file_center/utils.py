from __future__ import annotations
import mimetypes
import os
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from .config import DEFAULT_MIME_TYPE

# control characters, quotes and path separators never reach a header
_UNSAFE_RE = re.compile(r'[\x00-\x1f\x7f"\\/]')


def guess_mime_from_path(p: Path, fallback: str = DEFAULT_MIME_TYPE) -> str:
    mt, _ = mimetypes.guess_type(str(p))
    return mt or fallback


def display_name(file_name: Optional[str], mime_type: Optional[str]) -> str:
    """
    Name offered to the client. Items stored without a name get "file"
    plus the extension registered for their MIME type.
    """
    name = _UNSAFE_RE.sub("", os.path.basename(file_name or "")).strip()
    if name:
        return name
    return "file" + (mimetypes.guess_extension(mime_type or "") or "")


def content_disposition(file_name: Optional[str], mime_type: Optional[str], attachment: bool) -> str:
    name = display_name(file_name, mime_type)
    # plain filename= must stay ASCII; filename* carries the real name (RFC 6266)
    fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_")
    disposition = "attachment" if attachment else "inline"
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"
