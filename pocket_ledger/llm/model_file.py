"""
Model File Import

Model files are picked by the user from anywhere on disk. Before one is
copied into our models directory we check the GGUF magic bytes, so a
wrong pick fails fast instead of half-way through a multi-gigabyte load.
"""

import shutil
from pathlib import Path
from typing import Union

import structlog


logger = structlog.get_logger(__name__)

GGUF_MAGIC = b"GGUF"  # 0x47 0x47 0x55 0x46

PathLike = Union[str, Path]


class InvalidModelFileError(Exception):
    """The file is missing or is not a GGUF model."""
    pass


def is_gguf_file(path: PathLike) -> bool:
    """True only if the file's first four bytes are the GGUF magic."""
    try:
        with open(path, "rb") as f:
            return f.read(len(GGUF_MAGIC)) == GGUF_MAGIC
    except OSError:
        return False


def import_model_file(source: PathLike, models_dir: PathLike) -> Path:
    """
    Copy a GGUF model into `models_dir`.

    Args:
        source: The file the user picked
        models_dir: Where imported models live; created if missing

    Returns:
        Path of the copy (or of `source` itself if it already lives there)

    Raises:
        InvalidModelFileError: If `source` is not a readable GGUF file.
            Nothing is copied in that case.
    """
    source = Path(source).expanduser()
    if not source.is_file():
        raise InvalidModelFileError(f"Model file not found: {source}")
    if not is_gguf_file(source):
        raise InvalidModelFileError(f"Not a GGUF model file: {source.name}")

    target_dir = Path(models_dir).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    destination = target_dir / source.name

    if destination.resolve() == source.resolve():
        logger.info("model_already_imported", path=str(destination))
        return destination

    shutil.copyfile(source, destination)
    logger.info(
        "model_imported",
        source=str(source),
        destination=str(destination),
        size_bytes=destination.stat().st_size,
    )
    return destination
