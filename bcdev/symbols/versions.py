"""Feed version matching.

Priority: an exact match wins; otherwise the closest version at or above
the request within the same major.minor. Never below, never across
major.minor.
"""

from __future__ import annotations

from collections.abc import Sequence

from bcdev.errors import NoCompatibleVersion

VersionParts = tuple[int, int, int, int]


def parse_version_parts(version: str) -> VersionParts | None:
    """Parse ``major.minor.build[.revision]``; revision defaults to 0.

    Returns ``None`` for strings with fewer than three numeric segments.
    A non-numeric revision is treated as 0.
    """
    segments = version.strip().split(".")
    if len(segments) < 3:
        return None
    try:
        major, minor, build = (int(s) for s in segments[:3])
    except ValueError:
        return None
    revision = 0
    if len(segments) >= 4:
        try:
            revision = int(segments[3])
        except ValueError:
            revision = 0
    return (major, minor, build, revision)


def find_matching_version(available: Sequence[str], target: str) -> str | None:
    """Return the best available version for *target*, or ``None``."""
    if not available:
        return None

    target_key = target.strip().lower()
    for version in available:
        if version.strip().lower() == target_key:
            return version

    wanted = parse_version_parts(target)
    if wanted is None:
        return None

    best: str | None = None
    best_key: tuple[int, int] | None = None
    for version in available:
        parts = parse_version_parts(version)
        if parts is None or parts[:2] != wanted[:2]:
            continue
        key = parts[2:]
        if key < wanted[2:]:
            continue
        if best_key is None or key < best_key:
            best, best_key = version, key
    return best


def format_available_versions(versions: Sequence[str], max_count: int = 10) -> str:
    """Render a version list for error messages."""
    if not versions:
        return "(none)"
    shown = ", ".join(versions[:max_count])
    if len(versions) > max_count:
        shown += f" (and {len(versions) - max_count} more)"
    return shown


def select_version(available: Sequence[str], target: str, package_id: str) -> str:
    """Like ``find_matching_version`` but raises ``NoCompatibleVersion``.

    The message lists the candidates in the requested major.minor and the
    complete list, so the operator can pick a different target.
    """
    match = find_matching_version(available, target)
    if match is not None:
        return match

    wanted = parse_version_parts(target)
    same_line: list[str] = []
    line = target
    if wanted is not None:
        line = f"{wanted[0]}.{wanted[1]}"
        for version in available:
            parts = parse_version_parts(version)
            if parts is not None and parts[:2] == wanted[:2]:
                same_line.append(version)

    raise NoCompatibleVersion(
        f"Version {target} not found for {package_id}. "
        f"Available in {line}: {format_available_versions(same_line)}. "
        f"All available versions: {format_available_versions(available)}"
    )
