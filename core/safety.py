"""
PixelPulse — Safety & Resource Guards
Preflight checks run on local input files before they are decoded.
"""

import os
from pathlib import Path

# --- Configurable Limits ---
MAX_FILE_MB = 50           # Maximum input file size
MIN_DISK_MB = 50.0         # Minimum free space in the export directory
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp"}


class SafetyError(Exception):
    """Raised when a preflight check fails."""
    pass


def check_extension(filename: str) -> str:
    """Return the lower-cased extension, or raise SafetyError if it isn't an allowed image type."""
    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    return ext


def check_size(size_bytes: int) -> float:
    """Return the size in MB, or raise SafetyError above MAX_FILE_MB."""
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > MAX_FILE_MB:
        raise SafetyError(
            f"Input file is {size_mb:.0f}MB, exceeds {MAX_FILE_MB}MB limit. "
            f"Use a smaller image."
        )
    return size_mb


def preflight(input_path: str, output_dir: str | None = None) -> dict:
    """Run all safety checks before loading an image file.

    Args:
        input_path: Path to the input image.
        output_dir: Directory where exports will be written (optional).

    Returns:
        dict with file metadata (path, size_mb, extension)

    Raises:
        SafetyError: If any check fails.
        FileNotFoundError: If input doesn't exist.
    """
    input_path = str(input_path)
    real_path = os.path.realpath(input_path)

    # 1. File exists
    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    # 2. File size check
    size_mb = check_size(os.path.getsize(real_path))

    # 3. File extension check
    ext = check_extension(real_path)

    # 4. Disk space check (if output dir specified)
    if output_dir:
        output_dir = str(output_dir)
        check_dir = output_dir if os.path.isdir(output_dir) else os.path.dirname(output_dir) or "."
        if os.path.isdir(check_dir):
            stat = os.statvfs(check_dir)
            free_mb = (stat.f_bavail * stat.f_frsize) / (1024 ** 2)
            if free_mb < MIN_DISK_MB:
                raise SafetyError(
                    f"Only {free_mb:.0f}MB free disk space, need {MIN_DISK_MB:.0f}MB minimum."
                )

    return {
        "path": real_path,
        "size_mb": size_mb,
        "extension": ext,
    }
