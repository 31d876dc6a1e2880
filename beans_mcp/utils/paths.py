from __future__ import annotations

import os
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]


def is_path_within_root(root: PathLike, target: PathLike) -> bool:
    """Check whether ``target`` lies strictly inside ``root``.

    Both paths are made absolute and normalised lexically, so ``..`` segments
    are collapsed without touching the filesystem. A path is not inside
    itself. Paths on different drives never match.
    """
    resolved_root = os.path.abspath(root)
    resolved_target = os.path.abspath(target)

    try:
        rel = os.path.relpath(resolved_target, resolved_root)
    except ValueError:
        return False

    if rel == os.curdir or os.path.isabs(rel):
        return False
    return rel != os.pardir and not rel.startswith(os.pardir + os.sep)
