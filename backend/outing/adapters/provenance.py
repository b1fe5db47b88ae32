"""Provenance helpers for adapters."""

from datetime import UTC, datetime

from backend.outing.models.common import Provenance


def provenance_for_demo(source: str, ref_id: str | None = None) -> Provenance:
    """Create provenance for demo-dataset results.

    Args:
        source: Source identifier (e.g., "eventfinda")
        ref_id: Optional reference ID (e.g., the anchor date)

    Returns:
        Provenance with a demo:// URL and mode="demo"
    """
    return Provenance(
        source=f"discovery.{source}",
        ref_id=f"{source}/{ref_id}" if ref_id else source,
        source_url=f"demo://{source}/{ref_id}" if ref_id else f"demo://{source}",
        fetched_at=datetime.now(UTC),
        mode="demo",
    )


def provenance_for_http(source: str, url: str, mode: str | None = "live") -> Provenance:
    """Create provenance for HTTP-based adapter results.

    Args:
        source: Source identifier (e.g., "discovery.eventbrite", "weather.open_meteo")
        url: Full URL of the HTTP request
        mode: "live" for discovery sources, None for auxiliary lookups

    Returns:
        Provenance with fetched_at=now(UTC)
    """
    return Provenance(
        source=source,
        ref_id=source,
        source_url=url,
        fetched_at=datetime.now(UTC),
        mode=mode,
    )
