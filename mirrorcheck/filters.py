from __future__ import annotations

import logging
import os
import stat
from typing import Iterable, Iterator, List, Sequence

from .models import Candidate


logger = logging.getLogger(__name__)

_SEPARATORS = ("\\", "/")


def _normalise(text: str) -> str:
    for sep in _SEPARATORS:
        text = text.replace(sep, "/")
    return text.casefold()


def normalise_fragments(fragments: Iterable[str]) -> List[str]:
    """Fold case, unify separators and drop the separators around each fragment.

    ``\\$RECYCLE.BIN\\`` and ``$recycle.bin`` both become ``$recycle.bin``.
    Empty fragments are discarded so they cannot exclude everything.
    """

    cleaned = []
    for fragment in fragments:
        value = _normalise(fragment).strip("/")
        if value:
            cleaned.append(value)
    return cleaned


def is_excluded(path: str, fragments: Sequence[str]) -> bool:
    """True when any exclusion fragment occurs in ``path``, ignoring case.

    Both sides go through the same normalisation so a fragment written with
    backslashes matches a path reported with forward slashes and vice versa.
    """

    return _matches(path, normalise_fragments(fragments))


def iter_candidates(source_root: str, exclude_fragments: Sequence[str] = ()) -> Iterator[Candidate]:
    """Walk ``source_root`` depth-first and yield every regular file not excluded.

    Unreadable directories and entries are skipped. Exclusions are matched
    against the path relative to ``source_root``, and excluded directories are
    pruned so their contents are never listed.
    """

    fragments = normalise_fragments(exclude_fragments)
    root = str(source_root)
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", current, exc)
            continue
        for entry in entries:
            if fragments and _matches(os.path.relpath(entry.path, root), fragments):
                continue
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    stack.append(entry.path)
                    continue
                stat_result = entry.stat(follow_symlinks=False)
            except OSError as exc:
                logger.debug("Skipping unreadable entry %s: %s", entry.path, exc)
                continue
            if not stat.S_ISREG(stat_result.st_mode):
                continue
            yield Candidate(entry.path, int(stat_result.st_size))


def _matches(path: str, fragments: Sequence[str]) -> bool:
    haystack = _normalise(path)
    return any(fragment in haystack for fragment in fragments)
