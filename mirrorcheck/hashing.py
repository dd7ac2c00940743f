from __future__ import annotations

import hashlib


_CHUNK_SIZE = 4 * 1024 * 1024


def hash_file(path: str, algorithm: str = "sha256") -> str:
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(_CHUNK_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()
