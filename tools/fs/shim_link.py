from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from shimdeploy.core.errors import BackupConflict, FilesystemError

from ._path import PathLike, expand_host_path

logger = logging.getLogger(__name__)


class ShimLinkState(str, Enum):
    ABSENT = "absent"
    LINKED_TO_ALTERNATE = "linked_to_alternate"
    LINKED_ELSEWHERE_BACKED_UP = "linked_elsewhere_backed_up"
    LINKED_ELSEWHERE_NO_BACKUP = "linked_elsewhere_no_backup"


@dataclass(frozen=True)
class ShimLink:
    link_path: Path
    target_path: Path | None
    backup_link_path: Path
    state: ShimLinkState

    def to_dict(self) -> dict[str, str | None]:
        return {
            "link_path": str(self.link_path),
            "target_path": str(self.target_path) if self.target_path is not None else None,
            "backup_link_path": str(self.backup_link_path),
            "state": self.state.value,
        }


def _points_to(link: Path, target: Path) -> bool:
    if not link.is_symlink():
        return False
    dest = Path(os.readlink(link))
    if not dest.is_absolute():
        dest = link.parent / dest
    return os.path.normpath(dest) == os.path.normpath(target)


class ShimLinkManager:
    """
    Owns the symlink a containerd-like backend uses to locate the runtime shim.

    Whatever occupied the link path before the first ensure_linked() is moved
    aside once and moved back by ensure_unlinked().
    """

    def inspect(self, link_path: PathLike, target_path: PathLike, backup_link_path: PathLike) -> ShimLink:
        link = expand_host_path(link_path)
        target = expand_host_path(target_path)
        backup = expand_host_path(backup_link_path)

        if not os.path.lexists(link):
            state = ShimLinkState.ABSENT
        elif _points_to(link, target):
            state = ShimLinkState.LINKED_TO_ALTERNATE
        elif os.path.lexists(backup):
            state = ShimLinkState.LINKED_ELSEWHERE_BACKED_UP
        else:
            state = ShimLinkState.LINKED_ELSEWHERE_NO_BACKUP
        return ShimLink(link_path=link, target_path=target, backup_link_path=backup, state=state)

    def ensure_linked(self, link_path: PathLike, target_path: PathLike, backup_link_path: PathLike) -> ShimLink:
        current = self.inspect(link_path, target_path, backup_link_path)
        link, backup = current.link_path, current.backup_link_path
        target = expand_host_path(target_path)

        if current.state is ShimLinkState.LINKED_TO_ALTERNATE:
            return current

        try:
            if current.state is ShimLinkState.LINKED_ELSEWHERE_NO_BACKUP:
                logger.warning("%s already exists; moving it to %s", link, backup)
                os.replace(link, backup)
            elif current.state is ShimLinkState.LINKED_ELSEWHERE_BACKED_UP:
                logger.warning("%s already exists and %s is taken; removing it", link, backup)
                link.unlink()
            link.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(target, link)
        except OSError as e:
            raise FilesystemError(
                code="fs.link_failed",
                message=f"Failed to link {link} -> {target}",
                data={"link_path": str(link), "target_path": str(target), "error": repr(e)},
            ) from e

        logger.info("linked %s -> %s", link, target)
        return ShimLink(link_path=link, target_path=target, backup_link_path=backup, state=ShimLinkState.LINKED_TO_ALTERNATE)

    def ensure_unlinked(
        self,
        link_path: PathLike,
        backup_link_path: PathLike,
        target_path: PathLike | None = None,
    ) -> ShimLink:
        """
        Remove the owned symlink and move any backed-up entry back.

        With target_path=None any symlink at link_path counts as owned.
        """
        link = expand_host_path(link_path)
        backup = expand_host_path(backup_link_path)
        target = expand_host_path(target_path) if target_path is not None else None

        owned = link.is_symlink() if target is None else _points_to(link, target)
        try:
            if owned:
                link.unlink()
                logger.info("removed shim link %s", link)
            if os.path.lexists(backup):
                if os.path.lexists(link):
                    raise BackupConflict(
                        code="backup.link_occupied",
                        message=f"Cannot restore {backup}: {link} is occupied by an entry this agent does not own",
                        data={"link_path": str(link), "backup_link_path": str(backup)},
                    )
                os.replace(backup, link)
                logger.info("restored %s from %s", link, backup)
        except OSError as e:
            raise FilesystemError(
                code="fs.unlink_failed",
                message=f"Failed to unlink {link}",
                data={"link_path": str(link), "error": repr(e)},
            ) from e

        if target is not None:
            return self.inspect(link, target, backup)
        state = ShimLinkState.LINKED_ELSEWHERE_NO_BACKUP if os.path.lexists(link) else ShimLinkState.ABSENT
        return ShimLink(link_path=link, target_path=None, backup_link_path=backup, state=state)
