from __future__ import annotations

import os
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]


def expand_host_path(p: PathLike) -> Path:
    # Expand ~ and env vars, make absolute, but never follow symlinks: the
    # shim link itself is one of the entries we manage.
    return Path(os.path.abspath(os.path.expandvars(os.path.expanduser(os.fspath(p)))))
