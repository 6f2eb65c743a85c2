"""bcdev: compiler artifacts and symbol packages for Business Central development.

  - Resolves a coarse platform version (e.g. ``27.0``) to the newest
    published release in the artifact CDN index
  - Pulls only the needed files out of the multi-gigabyte platform archive
    with HTTP range requests (EOCD -> central directory -> entries)
  - Extracts the compiler subtree for the running OS from the nested
    ``ALLanguage.vsix`` installer
  - Caches everything per version, populated at most once across threads
    and processes, with a hashed completion marker
  - Resolves app dependencies to NuGet flat-container symbol packages
"""

__version__ = "0.1.0"
__description__ = "Partial-download artifact cache and symbol resolver for AL development"

from bcdev.core.artifact_cache import ArtifactCache
from bcdev.symbols.downloader import SymbolDownloader
from bcdev.cli.app import app as cli

__all__ = ["ArtifactCache", "SymbolDownloader", "cli", "__version__"]
