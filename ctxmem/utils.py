from __future__ import annotations

import logging
import re
import sys
from pathlib import PurePosixPath, PureWindowsPath

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT = "unknown-project"

_DRIVE_ROOT_RE = re.compile(r"^([A-Za-z]):[\\/]*$")


def project_name_from_cwd(cwd: str | None, platform: str | None = None) -> str:
    """Derive a project name from the final segment of ``cwd``.

    Empty and root paths map to ``unknown-project``; a bare Windows drive root
    such as ``C:\\`` maps to ``drive-C``.
    """

    if not cwd or not cwd.strip():
        logger.debug("empty cwd, using fallback project name")
        return UNKNOWN_PROJECT
    platform = platform or sys.platform
    if platform == "win32":
        drive = _DRIVE_ROOT_RE.match(cwd.strip())
        if drive:
            return f"drive-{drive.group(1).upper()}"
        name = PureWindowsPath(cwd.strip()).name
    else:
        name = PurePosixPath(cwd.strip()).name
    if not name:
        logger.debug("root directory %s has no project name, using fallback", cwd)
        return UNKNOWN_PROJECT
    return name


def transcript_dir_name(cwd: str) -> str:
    return cwd.replace("/", "-")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
