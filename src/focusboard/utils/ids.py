"""
Identifier utilities.

Projects get a deterministic id derived from their folder path so that
every device computes the same id for the same folder without talking to
each other. Everything else gets a random UUID.
"""

import uuid
from pathlib import Path, PurePosixPath

# Fixed namespace for uuid5 project ids. Changing it re-keys every project.
PROJECT_NAMESPACE = uuid.UUID("6f1c9a52-3d0e-5b8e-9a4f-2c7d1e0b8a31")


def new_id() -> uuid.UUID:
    """Random identifier for focus records, tasks and slots."""
    return uuid.uuid4()


def normalize_folder_path(folder_path) -> str:
    """
    Normalise a folder path for hashing.

    Strips a file:// scheme, expands a leading "~", converts separators to
    "/" and drops trailing slashes. The filesystem is never touched, so the
    result depends only on the input string.
    """
    text = str(folder_path).strip()
    if text.startswith("file://"):
        text = text[len("file://"):]
    if text.startswith("~"):
        text = str(Path(text).expanduser())
    text = text.replace("\\", "/")
    return str(PurePosixPath(text)) if text else ""


def project_id_for_path(folder_path) -> uuid.UUID:
    """Stable project id: uuid5 (SHA-1) of the normalised folder path."""
    return uuid.uuid5(PROJECT_NAMESPACE, normalize_folder_path(folder_path))


def parse_uuid(value) -> uuid.UUID:
    """
    Coerce a UUID or its string form into a UUID.

    Raises:
        ValueError: for anything that is not a valid UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Not a UUID: {value!r}")
    return uuid.UUID(value)
