from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

BINARY_CONTENT_TYPES = ("application/pdf", "application/zip")
UPLOAD_FIELD = "file"


class FilesystemError(RuntimeError):
    """A local file could not be read; raised before any network call."""

    def __init__(self, path: Union[str, Path], reason: str):
        super().__init__(f"Cannot read file {path}: {reason}")
        self.path = str(path)
        self.reason = reason


def is_binary_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    ct = content_type.lower()
    return any(t in ct for t in BINARY_CONTENT_TYPES)


def guess_extension(content_type: Optional[str]) -> str:
    if not content_type:
        return "bin"
    ct = content_type.split(";")[0].strip().lower()
    return {
        "application/pdf": "pdf",
        "application/zip": "zip",
    }.get(ct, "bin")


def build_upload(file_path: Union[str, Path]) -> dict[str, tuple[str, bytes]]:
    """Read a local file into a multipart payload keyed by the upload field name."""
    p = Path(file_path).expanduser()
    try:
        data = p.read_bytes()
    except FileNotFoundError:
        raise FilesystemError(p, "no such file") from None
    except IsADirectoryError:
        raise FilesystemError(p, "is a directory") from None
    except OSError as e:
        raise FilesystemError(p, e.strerror or str(e)) from e
    return {UPLOAD_FIELD: (p.name, data)}
