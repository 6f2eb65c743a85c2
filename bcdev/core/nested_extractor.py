"""Extraction of the platform-specific compiler subtree from the nested installer.

The installer archive (a VSIX) keeps one build of the compiler per OS under
``extension/bin/{platform}/``, next to the dozens of runtime files it needs
to run standalone. The whole subtree is extracted, keeping paths relative
to that prefix.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import sys
import zipfile
from pathlib import Path, PurePosixPath

from bcdev.errors import ArchiveFormatError, ExecutableNotFoundInArchive, UnsupportedPlatform

logger = logging.getLogger(__name__)

INSTALLER_ROOT = "extension"
COMPILER_BASENAME = "alc"

_PLATFORM_IDS = {
    "win32": "win32",
    "cygwin": "win32",
    "darwin": "darwin",
    "linux": "linux",
}


def platform_id(system: str | None = None) -> str:
    """Map ``sys.platform`` (or *system*) to the installer's platform folder."""
    system = system or sys.platform
    for prefix, pid in _PLATFORM_IDS.items():
        if system.startswith(prefix):
            return pid
    raise UnsupportedPlatform(
        f"Unsupported platform: {system}. The compiler is only available "
        "for Windows, macOS, and Linux."
    )


def compiler_executable_name(pid: str) -> str:
    """File name of the compiler executable for a platform folder."""
    return f"{COMPILER_BASENAME}.exe" if pid == "win32" else COMPILER_BASENAME


def platform_prefix(pid: str) -> str:
    return f"{INSTALLER_ROOT}/bin/{pid}/"


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def extract_platform_subtree(
    archive_path: Path, pid: str, destination_dir: Path
) -> int:
    """Extract every file under ``extension/bin/{pid}/`` into *destination_dir*.

    Returns the number of files written. Raises
    ``ExecutableNotFoundInArchive`` when the compiler was not among them.
    """
    prefix = platform_prefix(pid).lower()
    executable = compiler_executable_name(pid)
    destination_dir = Path(destination_dir)
    root = destination_dir.resolve()

    count = 0
    executable_path: Path | None = None
    logger.info("Extracting %s compiler and runtime from %s", pid, Path(archive_path).name)

    try:
        archive = zipfile.ZipFile(archive_path)
    except zipfile.BadZipFile as exc:
        raise ArchiveFormatError(f"Not a valid archive: {archive_path}: {exc}") from exc

    with archive:
        for info in archive.infolist():
            name = info.filename.replace("\\", "/")
            if not name.lower().startswith(prefix):
                continue
            relative = name[len(prefix):]
            if not relative or info.is_dir():
                continue

            target = destination_dir.joinpath(*PurePosixPath(relative).parts)
            if not target.resolve().is_relative_to(root):
                raise ArchiveFormatError(f"Entry escapes destination: {info.filename}")

            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            count += 1

            if relative.lower() == executable.lower():
                executable_path = target

    logger.info("Extracted %d files", count)

    if executable_path is None:
        raise ExecutableNotFoundInArchive(
            f"Compiler not found in installer at '{platform_prefix(pid)}'. "
            f"Extracted {count} files but none was {executable}."
        )

    # Zip extraction drops the execute bit; restore it for the compiler
    if os.name != "nt":
        _make_executable(executable_path)
        logger.debug("Marked %s executable", executable_path)

    return count
