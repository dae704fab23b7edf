"""File validation collaborator used by audio and image adapters."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection

FileIssueKind = Literal[
    "invalid_type", "not_found", "unreadable", "unsupported_extension", "too_large"
]

MB = 1024 * 1024


@dataclass(frozen=True)
class FileIssue:
    """Why a file was rejected."""

    kind: FileIssueKind
    message: str


@runtime_checkable
class FileValidator(Protocol):
    """validate(path) -> None when acceptable, else a FileIssue."""

    def validate(
        self,
        path: Any,
        *,
        allowed_extensions: Collection[str],
        max_bytes: int,
        label: str = "File",
    ) -> FileIssue | None:
        """Check existence, readability, extension and size."""
        ...


class LocalFileValidator:
    """Validate files on the local filesystem."""

    def validate(
        self,
        path: Any,
        *,
        allowed_extensions: Collection[str],
        max_bytes: int,
        label: str = "File",
    ) -> FileIssue | None:
        if not isinstance(path, (str, Path)) or not str(path).strip():
            return FileIssue("invalid_type", f"{label} must be a file path string.")

        p = Path(path)
        if not p.is_file():
            return FileIssue("not_found", f"{label} does not exist: {p}")
        if not os.access(p, os.R_OK):
            return FileIssue("unreadable", f"{label} is not readable: {p}")

        ext = p.suffix.lower().lstrip(".")
        allowed = {e.lower().lstrip(".") for e in allowed_extensions}
        if ext not in allowed:
            return FileIssue(
                "unsupported_extension",
                f"Unsupported {label.lower()} format '{ext or '(none)'}'. "
                f"Supported formats: {', '.join(sorted(allowed))}.",
            )

        size = p.stat().st_size
        if size > max_bytes:
            return FileIssue(
                "too_large",
                f"{label} size exceeds {max_bytes // MB}MB limit "
                f"({size / MB:.2f}MB).",
            )
        return None
