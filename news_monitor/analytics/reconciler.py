"""
Attribute stored history records to registry sources by hostname.

Stored records only carry the URL they came from, so each record is
matched to the first source (in registry order) whose feed or website
hostname occurs in the record's hostname. Sources sharing a hostname
cannot be told apart; the first one takes every match, and a warning
names the colliding sources.
"""

import logging
from collections.abc import Iterable
from urllib.parse import urlparse

from news_monitor.analytics.schemas import HistoryRecord, SourceStats
from news_monitor.sources.schemas import Source

logger = logging.getLogger(__name__)


def extract_hostname(url: str | None) -> str | None:
    """Lowercased hostname without a leading ``www.``, or None if unparseable."""
    if not url:
        return None
    try:
        hostname = urlparse(url.strip()).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    hostname = hostname.lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname or None


def source_hostnames(source: Source) -> list[str]:
    """Feed hostname first, then website hostname if different."""
    hosts: list[str] = []
    for url in (source.rss_url, source.url):
        host = extract_hostname(url)
        if host and host not in hosts:
            hosts.append(host)
    return hosts


def shared_hostnames(sources: Iterable[Source]) -> dict[str, list[str]]:
    """Hostnames claimed by more than one source, mapped to those source ids."""
    owners: dict[str, list[str]] = {}
    for source in sources:
        for host in source_hostnames(source):
            owners.setdefault(host, []).append(source.id)
    return {host: ids for host, ids in owners.items() if len(ids) > 1}


def match_source(
    record: HistoryRecord,
    candidates: list[tuple[Source, list[str]]],
) -> Source | None:
    """First source whose hostname occurs in the record's hostname."""
    haystack = extract_hostname(record.origin_url) or record.origin_url.lower()
    for source, hosts in candidates:
        if any(host in haystack for host in hosts):
            return source
    return None


def compute_stats(
    sources: list[Source],
    records: Iterable[HistoryRecord],
) -> dict[str, SourceStats]:
    """
    Count matched history records per source.

    Every source appears in the result, with zero counts when nothing
    matched. Records matching no source are dropped.
    """
    sources = list(sources)
    stats = {source.id: SourceStats(source_id=source.id) for source in sources}
    candidates = [(source, source_hostnames(source)) for source in sources]

    collisions = shared_hostnames(sources)
    if collisions:
        logger.warning(
            "Sources share hostnames; matches go to the first in registry order: %s",
            {host: ids for host, ids in sorted(collisions.items())},
        )

    unmatched = 0
    for record in records:
        source = match_source(record, candidates)
        if source is None:
            unmatched += 1
            continue
        stats[source.id].add(record)

    if unmatched:
        logger.debug("%d history records matched no source", unmatched)
    return stats
