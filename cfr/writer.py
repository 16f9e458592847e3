from __future__ import annotations

import difflib
import logging
import os


logger = logging.getLogger(__name__)


class WriteFailed(Exception):
    """Writing one file failed; later files were not attempted.

    ``changed`` says whether any earlier file in the same call was written.
    """

    def __init__(self, path: str, changed: bool, cause: OSError):
        super().__init__(f"failed to write {path}: {cause}")
        self.path = path
        self.changed = changed
        self.cause = cause


def _write(path: str, data: bytes, changed: bool) -> None:
    try:
        with open(path, "wb") as fh:
            fh.write(data)
    except OSError as e:
        logger.error("Failed to write binding file %s: %s", path, e)
        raise WriteFailed(path, changed, e) from e


def write_file_set_with_diff(files: dict[str, str], out_dir: str) -> bool:
    """Write every file whose on-disk bytes differ from the desired content.

    Returns True if at least one file was written. A file that cannot be read
    (missing included) is always written.
    """
    changed = False
    for name, content in files.items():
        path = os.path.join(out_dir, name)
        desired = content.encode("utf-8")
        try:
            with open(path, "rb") as fh:
                current = fh.read()
        except OSError as e:
            logger.debug("Writing %s because it could not be read: %s", path, e)
            _write(path, desired, changed)
            changed = True
            continue

        if current == desired:
            logger.debug("Skipping %s, content unchanged", path)
            continue

        if logger.isEnabledFor(logging.DEBUG):
            diff = difflib.unified_diff(
                current.decode("utf-8", errors="replace").splitlines(keepends=True),
                content.splitlines(keepends=True),
                fromfile=f"{path} (on disk)",
                tofile=f"{path} (generated)",
            )
            logger.debug("Writing %s because content differs:\n%s", path, "".join(diff))
        _write(path, desired, changed)
        changed = True

    return changed
