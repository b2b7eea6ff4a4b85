"""Compression of backup artifacts."""

import gzip
import shutil
import tarfile
from enum import Enum


class Compression(Enum):
    GZ = "gz"
    TAR_GZ = "tar.gz"


def compress(source: str, target: str) -> None:
    """Gzip `source` into `target`, leaving `source` in place."""
    with open(source, 'rb') as f_in:
        with gzip.open(target, 'wb') as f_out:
            shutil.copyfileobj(f_in, f_out)


def decompress(source: str, target: str, kind: Compression) -> None:
    """Decompress `source` into the file `target`.

    A tar archive must contain a regular file; the first one is extracted.
    """
    if kind is Compression.GZ:
        with gzip.open(source, 'rb') as f_in:
            with open(target, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        return

    with tarfile.open(source, 'r:gz') as archive:
        member = next((m for m in archive if m.isfile()), None)
        if member is None:
            raise ValueError(f"No file found in archive {source}")
        f_in = archive.extractfile(member)
        with f_in, open(target, 'wb') as f_out:
            shutil.copyfileobj(f_in, f_out)
