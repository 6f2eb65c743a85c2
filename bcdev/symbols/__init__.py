"""Symbol package resolution against NuGet flat-container feeds."""

from bcdev.symbols.downloader import SymbolDownloader
from bcdev.symbols.feed import NuGetFeedClient
from bcdev.symbols.resolver import build_package_id, symbols_for
from bcdev.symbols.versions import find_matching_version, parse_version_parts

__all__ = [
    "SymbolDownloader",
    "NuGetFeedClient",
    "build_package_id",
    "symbols_for",
    "find_matching_version",
    "parse_version_parts",
]
