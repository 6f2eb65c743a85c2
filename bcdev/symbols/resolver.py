"""Symbol requests from a manifest, and their feed package identifiers.

Package id templates (country upper-cased inside the id; ``w1`` means no
country qualifier)::

    microsoft.platform.symbols
    microsoft.application[.{CC}].symbols
    microsoft.baseapplication[.{CC}].symbols.{appId}
    microsoft.systemapplication[.{CC}].symbols.{appId}
    microsoft.businessfoundation.symbols.{appId}
    microsoft.{name}[.{CC}].symbols[.{appId}]
    {publisher}.{name}.symbols[.{appId}]
"""

from __future__ import annotations

from bcdev.models.manifest import AppManifest
from bcdev.models.symbols import SymbolRequest

BASE_APPLICATION_APP_ID = "437dbf0e-84ff-417a-965d-ed2bb9650972"
SYSTEM_APPLICATION_APP_ID = "63ca2fa4-4f03-4f2b-a480-172fef340d3f"
BUSINESS_FOUNDATION_APP_ID = "f3552374-a1f2-4356-848e-196002525837"

NO_COUNTRY = "w1"
DEFAULT_PLATFORM_VERSION = "1.0.0.0"


def symbols_for(manifest: AppManifest) -> list[SymbolRequest]:
    """Symbols an app needs: platform symbols first, then its dependencies.

    Application, System and Base Application are always included. Explicit
    dependencies follow in manifest order, skipping any (publisher, name)
    already present.
    """
    platform_version = manifest.platform or DEFAULT_PLATFORM_VERSION
    application_version = manifest.application or platform_version

    symbols = [
        SymbolRequest(publisher="Microsoft", name="Application", version=application_version),
        SymbolRequest(publisher="Microsoft", name="System", version=platform_version),
        SymbolRequest(
            publisher="Microsoft",
            name="Base Application",
            version=application_version,
            app_id=BASE_APPLICATION_APP_ID,
        ),
    ]
    seen = {s.key for s in symbols}

    for dep in manifest.dependencies or []:
        request = SymbolRequest(
            publisher=dep.publisher,
            name=dep.name,
            version=dep.version,
            app_id=dep.id or None,
        )
        if request.key in seen:
            continue
        seen.add(request.key)
        symbols.append(request)

    return symbols


def normalize_country(country: str | None) -> str:
    """Lower-cased, trimmed country code; empty means ``w1``."""
    normalized = (country or "").strip().lower()
    return normalized or NO_COUNTRY


def _squash(value: str) -> str:
    return value.lower().replace(" ", "")


def build_package_id(request: SymbolRequest, country: str = NO_COUNTRY) -> str:
    """Feed package id for *request* in *country*."""
    publisher = _squash(request.publisher)
    name = _squash(request.name)
    country = normalize_country(country)
    cc = country.upper() if country != NO_COUNTRY else None

    def qualified(stem: str, app_id: str | None) -> str:
        parts = [stem]
        if cc:
            parts.append(cc)
        parts.append("symbols")
        if app_id:
            parts.append(app_id)
        return ".".join(parts)

    if publisher == "microsoft":
        if name == "system":
            return "microsoft.platform.symbols"
        if name == "application":
            return qualified("microsoft.application", None)
        if name == "baseapplication":
            return qualified("microsoft.baseapplication", request.app_id or BASE_APPLICATION_APP_ID)
        if name == "systemapplication":
            return qualified(
                "microsoft.systemapplication", request.app_id or SYSTEM_APPLICATION_APP_ID
            )
        if name == "businessfoundation":
            app_id = request.app_id or BUSINESS_FOUNDATION_APP_ID
            return f"microsoft.businessfoundation.symbols.{app_id}"
        return qualified(f"microsoft.{name}", request.app_id)

    if request.app_id:
        return f"{publisher}.{name}.symbols.{request.app_id}"
    return f"{publisher}.{name}.symbols"


def package_id_candidates(request: SymbolRequest, country: str = NO_COUNTRY) -> list[str]:
    """Ids to try in one feed: the country id, then the country-less id if different."""
    primary = build_package_id(request, country)
    candidates = [primary]
    if normalize_country(country) != NO_COUNTRY:
        fallback = build_package_id(request, NO_COUNTRY)
        if fallback != primary:
            candidates.append(fallback)
    return candidates
