"""ER wait-time resolution: scrape known systems and hospital sites, else synthesize.

Each facility is resolved independently; one slow or broken site never fails the
batch, it just ends up with a synthetic estimate.
"""

from __future__ import annotations

import asyncio
import json
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import urlparse

import httpx

from triagesense.config import Settings
from triagesense.schemas import WaitEstimate

GENERIC_WAIT_PATHS = (
    "/emergency-room-wait-times",
    "/er-wait-times",
    "/wait-times",
    "/emergency",
)

_WAIT_PATTERNS = (
    re.compile(r"wait\s*(?:time)?[:\s]*(\d{1,3})\s*min", re.IGNORECASE),
    re.compile(r"(\d{1,3})\s*min(?:ute)?s?\s*(?:wait|estimated)", re.IGNORECASE),
    re.compile(r"estimated[:\s]*(\d{1,3})\s*min", re.IGNORECASE),
)
_DRUPAL_SETTINGS = re.compile(r'data-drupal-selector="drupal-settings-json">([\s\S]*?)</script>')

MAX_PLAUSIBLE_WAIT_MINUTES = 500
SYNTHETIC_MIN_MINUTES = 15
SYNTHETIC_MAX_MINUTES = 90
MATCH_THRESHOLD = 0.5


def normalize_name(name: str) -> str:
    lowered = re.sub(r"[^a-z0-9\s]", "", str(name).lower())
    return re.sub(r"\s+", " ", lowered).strip()


def overlap_score(a: str, b: str) -> float:
    words_a = {w for w in a.split(" ") if len(w) > 2}
    words_b = {w for w in b.split(" ") if len(w) > 2}
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


def fuzzy_match(hospital_name: str, wait_times: Mapping[str, int]) -> int | None:
    normalized = normalize_name(hospital_name)
    if normalized in wait_times:
        return wait_times[normalized]

    best: int | None = None
    best_score = 0.0
    for key, minutes in wait_times.items():
        score = overlap_score(normalized, key)
        if score > best_score and score > MATCH_THRESHOLD:
            best_score = score
            best = minutes
    return best


def parse_inova_page(html: str) -> dict[str, int]:
    """Read ``drupalSettings.waitTimes`` (paragraph id -> list of locations)."""
    wait_times: dict[str, int] = {}
    match = _DRUPAL_SETTINGS.search(html)
    if not match:
        return wait_times

    try:
        settings = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        print(f"[triagesense] inova_parse_failed: {exc.msg}")
        return wait_times

    blocks = settings.get("waitTimes") if isinstance(settings, dict) else None
    if not isinstance(blocks, dict):
        return wait_times

    for locations in blocks.values():
        if not isinstance(locations, list):
            continue
        for entry in locations:
            if not isinstance(entry, dict):
                continue
            name = (entry.get("location") or {}).get("name")
            raw = entry.get("waitTime")
            if not name or raw is None or raw == "":
                continue
            minutes = _leading_int(raw)
            if minutes is not None and minutes >= 0:
                wait_times[normalize_name(name)] = minutes
    return wait_times


def _leading_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    found = re.match(r"\s*(-?\d+)", str(value))
    return int(found.group(1)) if found else None


def extract_wait_from_html(html: str) -> int | None:
    for pattern in _WAIT_PATTERNS:
        match = pattern.search(html)
        if match:
            minutes = int(match.group(1))
            if 0 <= minutes < MAX_PLAUSIBLE_WAIT_MINUTES:
                return minutes
    return None


def generate_synthetic_wait(hospital_name: str, *, now: datetime | None = None) -> int:
    """Stable for a name within one local wall-clock hour, always in [15, 90]."""
    hour = (now or datetime.now()).hour
    seed = sum(ord(ch) for ch in hospital_name) + hour
    rand = ((seed * 9301 + 49297) % 233280) / 233280
    value = SYNTHETIC_MIN_MINUTES + rand * (SYNTHETIC_MAX_MINUTES - SYNTHETIC_MIN_MINUTES)
    return int(math.floor(value + 0.5))


def site_origin(website: str) -> str | None:
    raw = website.strip()
    if not raw:
        return None
    parsed = urlparse(raw)
    if not parsed.scheme:
        parsed = urlparse(f"https://{raw}")
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


@dataclass(frozen=True)
class KnownSystem:
    name: str
    pattern: re.Pattern[str]
    url: str
    parser: Callable[[str], dict[str, int]]


KNOWN_SYSTEMS: tuple[KnownSystem, ...] = (
    KnownSystem(
        name="inova",
        pattern=re.compile(r"inova", re.IGNORECASE),
        url="https://www.inova.org/emergency-room-wait-times",
        parser=parse_inova_page,
    ),
)


@dataclass
class ScrapeCacheEntry:
    data: dict[str, int]
    timestamp: float


class ScrapeCache:
    """URL -> parsed wait times. Stale entries are ignored, never evicted."""

    def __init__(self, ttl_sec: float, *, clock: Callable[[], float] = time.monotonic):
        self._ttl_sec = ttl_sec
        self._clock = clock
        self._entries: dict[str, ScrapeCacheEntry] = {}

    def get(self, url: str) -> dict[str, int] | None:
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self._ttl_sec:
            return None
        return entry.data

    def put(self, url: str, data: dict[str, int]) -> None:
        self._entries[url] = ScrapeCacheEntry(data=data, timestamp=self._clock())

    def __len__(self) -> int:
        return len(self._entries)


class WaitTimeResolver:
    def __init__(
        self,
        settings: Settings,
        *,
        cache: ScrapeCache | None = None,
        known_systems: Sequence[KnownSystem] = KNOWN_SYSTEMS,
        transport: httpx.AsyncBaseTransport | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self._settings = settings
        self._cache = cache if cache is not None else ScrapeCache(settings.scrape_cache_ttl_sec)
        self._known_systems = tuple(known_systems)
        self._transport = transport
        self._now = now

    @property
    def cache(self) -> ScrapeCache:
        return self._cache

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": self._settings.user_agent},
            transport=self._transport,
        )

    async def resolve_batch(self, facilities: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        if not facilities:
            return []
        async with self._client() as client:
            estimates = await asyncio.gather(*[self._resolve_isolated(client, f) for f in facilities])
        return [
            {
                **facility,
                "waitTime": estimate.minutes,
                "waitTimeEstimated": estimate.estimated,
            }
            for facility, estimate in zip(facilities, estimates)
        ]

    async def resolve(self, facility: Mapping[str, Any]) -> WaitEstimate:
        async with self._client() as client:
            return await self._resolve_isolated(client, facility)

    async def _resolve_isolated(self, client: httpx.AsyncClient, facility: Mapping[str, Any]) -> WaitEstimate:
        name = str(facility.get("name") or "")
        website = facility.get("website") or None
        try:
            scraped = await self._scrape(client, name, website)
        except Exception as exc:
            print(f"[triagesense] waittime_scrape_failed: name={name!r} {type(exc).__name__}: {exc}")
            scraped = None
        if scraped is not None:
            return scraped
        return WaitEstimate(
            minutes=generate_synthetic_wait(name, now=self._now()),
            estimated=True,
            source="synthetic",
        )

    async def _scrape(self, client: httpx.AsyncClient, name: str, website: str | None) -> WaitEstimate | None:
        for system in self._known_systems:
            if not system.pattern.search(name):
                continue
            try:
                wait_times = await self._fetch_with_cache(client, system)
            except Exception as exc:
                print(f"[triagesense] known_system_scrape_failed: url={system.url} {type(exc).__name__}: {exc}")
                continue
            minutes = fuzzy_match(name, wait_times)
            if minutes is not None:
                return WaitEstimate(minutes=minutes, estimated=False, source="known_system")

        if website:
            minutes = await self._scrape_site(client, str(website))
            if minutes is not None:
                return WaitEstimate(minutes=minutes, estimated=False, source="site")
        return None

    async def _fetch_with_cache(self, client: httpx.AsyncClient, system: KnownSystem) -> dict[str, int]:
        cached = self._cache.get(system.url)
        if cached is not None:
            return cached

        # Concurrent misses on the same URL may both fetch; the last write wins.
        response = await client.get(system.url, timeout=self._settings.known_system_timeout_sec)
        response.raise_for_status()
        data = system.parser(response.text)
        self._cache.put(system.url, data)
        return data

    async def _scrape_site(self, client: httpx.AsyncClient, website: str) -> int | None:
        origin = site_origin(website)
        if origin is None:
            return None

        for path in GENERIC_WAIT_PATHS:
            try:
                response = await client.get(f"{origin}{path}", timeout=self._settings.site_timeout_sec)
            except httpx.HTTPError as exc:
                print(f"[triagesense] site_probe_failed: url={origin}{path} {type(exc).__name__}")
                continue
            if not response.is_success:
                continue
            minutes = extract_wait_from_html(response.text)
            if minutes is not None:
                return minutes
        return None
