from __future__ import annotations

import mimetypes
import re
import unicodedata
from typing import AbstractSet, Optional, Tuple

MAX_NAME_BYTES = 255
DEFAULT_EXTENSION = ".pdf"

_UNSAFE = re.compile(r"[^\w\-.]")
_UNDERSCORES = re.compile(r"_{2,}")

# mimetypes picks odd extensions for a few common scan formats
_PREFERRED_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/tiff": ".tif",
    "application/pdf": ".pdf",
    "image/png": ".png",
}


def split_extension(name: str) -> Tuple[str, str]:
    """`scan.final.jpg` -> (`scan.final`, `.jpg`); a leading dot is not an extension."""
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]


def extension_for(content_type: Optional[str]) -> str:
    if not content_type:
        return DEFAULT_EXTENSION
    mime = content_type.split(";", 1)[0].strip().lower()
    return _PREFERRED_EXTENSIONS.get(mime) or mimetypes.guess_extension(mime) or DEFAULT_EXTENSION


def _clean(supplied: str) -> str:
    name = unicodedata.normalize("NFC", supplied)
    name = "".join(ch for ch in name if unicodedata.category(ch)[0] != "C")
    # the name is a leaf, never a path
    segments = [s for s in name.replace("\\", "/").split("/") if s.strip() not in ("", ".", "..")]
    name = "_".join(s.strip() for s in segments)
    name = _UNSAFE.sub("_", name)
    name = _UNDERSCORES.sub("_", name)
    name = name.lstrip("._").rstrip("._ ")
    if not any(ch.isalnum() for ch in name):
        return ""
    return name


def _truncate(name: str, limit: int = MAX_NAME_BYTES) -> str:
    if len(name.encode("utf-8")) <= limit:
        return name
    stem, ext = split_extension(name)
    if len(ext.encode("utf-8")) > limit // 2:
        stem, ext = name, ""
    budget = limit - len(ext.encode("utf-8"))
    stem = stem.encode("utf-8")[:budget].decode("utf-8", errors="ignore")
    return stem + ext


def sanitize_filename(
    supplied: Optional[str],
    taken: AbstractSet[str],
    *,
    fallback: str,
    content_type: Optional[str] = None,
) -> str:
    """
    Derive a safe leaf name from an untrusted client-supplied file name.

    Path separators and `.`/`..` segments never survive: `../../etc/passwd`
    becomes `etc_passwd`. A name that is absent or sanitizes to nothing is
    replaced by `fallback` plus an extension guessed from `content_type`.
    If the result is already in `taken`, `-1`, `-2`, ... is appended before
    the extension until it is free. `taken` is not modified.
    """
    name = _clean(supplied or "")
    if not name:
        name = _clean(fallback) + extension_for(content_type)
    name = _truncate(name)

    if name not in taken:
        return name

    stem, ext = split_extension(name)
    n = 1
    while True:
        tail = f"-{n}{ext}"
        # shorten the stem, never the suffix
        room = MAX_NAME_BYTES - len(tail.encode("utf-8"))
        candidate = stem.encode("utf-8")[:room].decode("utf-8", errors="ignore") + tail
        if candidate not in taken:
            return candidate
        n += 1
