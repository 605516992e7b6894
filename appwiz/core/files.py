"""
File descriptor checks.

The wizard never opens files. It validates the descriptor produced by the
file-picking capability, {name, size, type, uri}, and stores it as-is.
"""
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

from appwiz.settings import settings
from appwiz.core.validation import add_error, as_number, is_blank

MIME_TO_EXT = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "application/pdf": "pdf",
}

IMAGE_EXTS = ("png", "jpeg", "jpg", "webp")
DOCUMENT_EXTS = IMAGE_EXTS + ("pdf",)

_FORMAT_MESSAGES = {
    IMAGE_EXTS: "File must be PNG, JPEG, JPG, or WebP format",
    DOCUMENT_EXTS: "File must be PNG, JPEG, JPG, WebP, or PDF format",
}

# Pickers report this when they cannot tell; the file name is the better hint then.
_GENERIC_MIME = {"", "application/octet-stream"}


@dataclass(frozen=True)
class FileDescriptor:
    name: str
    sizeBytes: int
    mimeType: str
    uri: str

    @classmethod
    def from_raw(cls, raw) -> Optional["FileDescriptor"]:
        """Accepts both the picker shape (size/type) and the contract shape (sizeBytes/mimeType)."""
        if not isinstance(raw, Mapping):
            return None
        size = as_number(raw.get("sizeBytes", raw.get("size")))
        uri = raw.get("uri")
        if size is None or is_blank(uri):
            return None
        return cls(
            name=str(raw.get("name") or ""),
            sizeBytes=int(size),
            mimeType=str(raw.get("mimeType", raw.get("type")) or ""),
            uri=str(uri),
        )


def file_extension(type_or_name: str) -> str:
    if "/" in type_or_name:
        return MIME_TO_EXT.get(type_or_name.lower(), "")
    parts = type_or_name.rsplit(".", 1)
    return parts[1].lower() if len(parts) == 2 else ""


def descriptor_extension(fd: FileDescriptor) -> str:
    if fd.mimeType.lower() not in _GENERIC_MIME:
        return file_extension(fd.mimeType)
    return file_extension(fd.name)


def size_limit_mb() -> str:
    mb = settings.MAX_FILE_SIZE_BYTES / (1024 * 1024)
    return f"{mb:g}"


def file_problems(raw, allowed_exts: Sequence[str]) -> list:
    """Size and format are independent checks; both messages are returned when both fail."""
    fd = FileDescriptor.from_raw(raw)
    if fd is None:
        return ["Invalid file"]
    problems = []
    if fd.sizeBytes > settings.MAX_FILE_SIZE_BYTES:
        problems.append(f"File size must be less than {size_limit_mb()}MB")
    if descriptor_extension(fd) not in allowed_exts:
        problems.append(_FORMAT_MESSAGES.get(tuple(allowed_exts), "Unsupported file format"))
    return problems


def check_file(errors: Dict[str, str], values: Mapping, key: str, allowed_exts: Sequence[str],
               label: str, optional: bool = False, path: Optional[str] = None) -> None:
    path = path or key
    raw = values.get(key)
    if raw is None or raw == {}:
        if not optional:
            add_error(errors, path, f"{label} is required")
        return
    problems = file_problems(raw, allowed_exts)
    if problems:
        add_error(errors, path, "; ".join(problems))


def check_image(errors, values, key, label, optional=False, path=None) -> None:
    check_file(errors, values, key, IMAGE_EXTS, label, optional=optional, path=path)


def check_document(errors, values, key, label, optional=False, path=None) -> None:
    check_file(errors, values, key, DOCUMENT_EXTS, label, optional=optional, path=path)
