"""Helper utility functions."""

import os
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the database stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_dir(directory: str) -> str:
    """
    Ensure directory exists, create if not.

    Args:
        directory: Directory path

    Returns:
        Directory path
    """
    os.makedirs(directory, exist_ok=True)
    return directory


def format_file_size(bytes: int) -> str:
    """
    Format file size in bytes to human-readable string.

    Args:
        bytes: File size in bytes

    Returns:
        Formatted string (e.g., "1.5 GB", "234 MB")
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if bytes < 1024.0:
            return f"{bytes:.1f} {unit}"
        bytes /= 1024.0
    return f"{bytes:.1f} PB"


def resolution_for_aspect_ratio(aspect_ratio: str) -> str:
    """Output resolution of the Kling model for a given aspect ratio."""
    if aspect_ratio == "16:9":
        return "1280x720"
    if aspect_ratio == "9:16":
        return "720x1280"
    return "720x720"


def default_title(prompt: str, max_length: int = 50) -> str:
    """Derive a video title from its prompt."""
    text = " ".join(prompt.split())
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].rstrip() + "..."
