"""Id allocation and server filename derivation."""
import os
import uuid


def allocate() -> str:
    """Return a new opaque, never-reused file id."""
    return str(uuid.uuid4())


def derive_filename(file_id: str, original_name: str) -> str:
    """Server filename for an upload: the id plus the original extension, if any.

    Only the base name of the untrusted original is considered, so directory
    parts (either separator) never reach the storage path. The extension keeps
    its case. Dot-files like ``.env`` have no extension.
    """
    base = original_name.replace("\\", "/").rsplit("/", 1)[-1]
    ext = os.path.splitext(base)[1]
    return f"{file_id}{ext}"
