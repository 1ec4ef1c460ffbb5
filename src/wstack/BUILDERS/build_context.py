"""
Build context assembly: the Dockerfile plus the source tree, as a tar archive.
"""
import io
import os
import tarfile
import tempfile
from typing import IO

# Contexts larger than this spill from memory to a temporary file.
SPOOL_MAX_MEMORY = 32 * 1024 * 1024

EXCLUDED_DIRS = {".git"}


def build_context(dockerfile: str, source_dir: str) -> IO[bytes]:
    """
    Packs ``dockerfile`` (as ``Dockerfile`` at the archive root) and the
    tree under ``source_dir`` into a tar archive, skipping version control metadata.

    :param dockerfile: Dockerfile text.
    :param source_dir: Root of the source tree.
    :return: A readable file object positioned at the start of the archive. The caller closes it.
    """
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
    try:
        with tarfile.open(fileobj=spool, mode="w") as tar:
            data = dockerfile.encode("utf-8")
            info = tarfile.TarInfo("Dockerfile")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))

            for dirpath, dirnames, filenames in os.walk(source_dir):
                dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
                rel_dir = os.path.relpath(dirpath, source_dir)
                for dirname in dirnames:
                    path = os.path.join(dirpath, dirname)
                    tar.add(path, arcname=_arcname(rel_dir, dirname), recursive=False)
                for filename in sorted(filenames):
                    arcname = _arcname(rel_dir, filename)
                    if arcname == "Dockerfile":
                        # The generated Dockerfile wins over one in the source tree.
                        continue
                    tar.add(os.path.join(dirpath, filename), arcname=arcname, recursive=False)
    except BaseException:
        spool.close()
        raise
    spool.seek(0)
    return spool


def _arcname(rel_dir: str, name: str) -> str:
    if rel_dir == os.curdir:
        return name
    return f"{rel_dir.replace(os.sep, '/')}/{name}"


CACHE_MOUNT = '--mount=type=cache,target="/root/.cache/go-build"'


def strip_cache_mounts(dockerfile: str) -> str:
    """Removes BuildKit-only cache mounts so the classic builder accepts the Dockerfile."""
    return dockerfile.replace(CACHE_MOUNT + " ", "").replace(CACHE_MOUNT, "")
