"""Sandboxed upload access - stored file references may only resolve inside the upload directory."""

import logging
from pathlib import Path, PurePosixPath, PureWindowsPath

logger = logging.getLogger(__name__)


class SandboxError(Exception):
    """Access denied: a file reference resolved outside the upload directory."""


def strip_to_basename(file_reference: str) -> str:
    """Drop every directory component, whichever separator style the reference uses."""
    return PureWindowsPath(PurePosixPath(file_reference).name).name


def ensure_within(root: Path, candidate: Path) -> Path:
    """Resolve candidate and verify it is a strict descendant of root. Raises SandboxError."""
    root = root.resolve()
    resolved = candidate.resolve()

    if resolved == root or not resolved.is_relative_to(root):
        raise SandboxError(f"Path '{candidate}' is outside the upload directory")

    return resolved


def resolve_upload_path(file_reference: str, upload_dir: Path) -> Path:
    """Map a stored file reference onto a file directly inside upload_dir.

    The stored reference is untrusted: only its base name is kept, then the
    rebuilt path is checked again after resolution (symlinks, '..' names).
    """
    name = strip_to_basename(file_reference)
    try:
        return ensure_within(upload_dir, upload_dir / name)
    except SandboxError:
        logger.warning(f"Path traversal attempt blocked: '{file_reference}' -> '{upload_dir / name}'")
        raise
