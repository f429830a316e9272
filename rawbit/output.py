# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Collision-safe output writing.

``OutputClaims`` makes "is this target free?" a critical section shared by
all jobs of a run, and ``write_atomic`` publishes a fully written temp file
onto the target in one step, so a target is always either absent, the prior
file, or the complete new file.
"""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Final

from rawbit.errors import FailureKind, PlanError, WriteError
from rawbit.planner import target_mode

__all__: Final[list[str]] = [
    "OutputClaims",
    "write_atomic",
]

logger = logging.getLogger(__name__)

# os.link errors meaning "this filesystem has no hard links" (exFAT, FAT32,
# some SMB mounts); ENOTSUP and EOPNOTSUPP are the same value on Linux
_NO_HARDLINK_ERRNOS: Final[frozenset[int]] = frozenset(
    {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP}
)


class OutputClaims:
    """Run-wide registry of output paths already taken by a job.

    Once a job claims a path no other job of the same run may write it,
    regardless of ``force``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed: dict[Path, Path] = {}

    def claim(self, target: Path, owner: Path, *, force: bool) -> None:
        """Reserve ``target`` for the job converting ``owner``.

        Raises:
            PlanError: If another job already claimed the target, the
                target exists on disk and ``force`` is not set, or the path
                can't be checked.
        """
        with self._lock:
            holder = self._claimed.get(target)
            if holder is not None and holder != owner:
                raise PlanError(
                    f"output already claimed by {holder.name}: {target}",
                    kind=FailureKind.WOULD_OVERWRITE,
                )
            try:
                mode = target_mode(target)
            except OSError as e:
                raise PlanError(
                    f"can't use output path {target}: {e.strerror or e}",
                    kind=FailureKind.INVALID_PATH,
                ) from e
            if mode is not None and stat.S_ISDIR(mode):
                raise PlanError(
                    f"computed filepath already exists as a directory: {target}",
                    kind=FailureKind.TARGET_IS_DIRECTORY,
                )
            if mode is not None and not force:
                raise PlanError(
                    f"won't overwrite existing file: {target}",
                    kind=FailureKind.WOULD_OVERWRITE,
                )
            self._claimed[target] = owner

    def release(self, target: Path, owner: Path) -> None:
        """Drop a claim after its owner failed to write the target."""
        with self._lock:
            if self._claimed.get(target) == owner:
                del self._claimed[target]

    def owner(self, target: Path) -> Path | None:
        with self._lock:
            return self._claimed.get(target)


def write_atomic(target: Path, data: bytes, *, overwrite: bool) -> None:
    """
    Write ``data`` to ``target`` via temp file then rename/link.

    The temp file lives beside the target so the final step never crosses a
    filesystem. With ``overwrite`` the temp file replaces any existing
    target; without it the temp file is hard-linked into place, which fails
    atomically if the target appeared in the meantime. Filesystems without
    hard links fall back to a check-then-rename.

    Raises:
        PlanError: If ``overwrite`` is false and the target exists.
        WriteError: On any other I/O failure.
    """
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(f"couldn't make output dir {target.parent}: {e}") from e

    try:
        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent,
            prefix=f".{target.stem}.",
            suffix=".tmp",
        )
    except OSError as e:
        raise WriteError(f"couldn't create output file in {target.parent}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        if overwrite:
            os.replace(tmp_path, target)
        else:
            _publish_exclusive(tmp_path, target)
        logger.debug("Published %s (%d bytes)", target, len(data))

    except FileExistsError as e:
        raise PlanError(
            f"won't overwrite existing file: {target}",
            kind=FailureKind.WOULD_OVERWRITE,
        ) from e
    except OSError as e:
        raise WriteError(f"couldn't write converted DNG to disk: {target}: {e}") from e
    finally:
        # After os.replace the temp name is already gone
        with contextlib.suppress(FileNotFoundError):
            tmp_path.unlink()


def _publish_exclusive(tmp_path: Path, target: Path) -> None:
    """Move ``tmp_path`` onto ``target`` unless the target already exists.

    Raises:
        FileExistsError: If the target exists.
        OSError: On any other failure.
    """
    try:
        os.link(tmp_path, target)
        return
    except OSError as e:
        if e.errno not in _NO_HARDLINK_ERRNOS:
            raise
        logger.debug("No hard links for %s (%s), falling back to rename", target, e.strerror)

    # Claims keep every other job of this run off the target, so only an
    # outside process can slip in between this check and the rename.
    if os.path.lexists(target):
        raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(target))
    os.rename(tmp_path, target)
