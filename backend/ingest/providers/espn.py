"""
ESPN scoreboard feed.
Fetches the public site API scoreboard for one sport/league and decodes it into a GameSnapshot.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Optional

import httpx
from pydantic import ValidationError

from shared.config import Settings, get_settings
from shared.errors import FetchError
from shared.models.domain import GameSnapshot
from shared.models.enums import FetchErrorKind
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import EngineMetrics, get_metrics

from ingest.providers.base import FeedSource

logger = get_logger(__name__)

_DATES_RE = re.compile(r"^\d{8}(-\d{8})?$")


def normalize_dates(value: str | date | None) -> Optional[str]:
    """Accept YYYYMMDD, YYYY-MM-DD, ranges of either, or a date; return ESPN's form."""
    if value is None:
        return None
    if isinstance(value, date):
        return value.strftime("%Y%m%d")
    cleaned = value.strip()
    if not cleaned:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", cleaned):
        return cleaned.replace("-", "")
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}-\d{4}-\d{2}-\d{2}", cleaned):
        parts = cleaned.split("-")
        return f"{''.join(parts[:3])}-{''.join(parts[3:])}"
    if _DATES_RE.match(cleaned):
        return cleaned
    raise ValueError("dates must be YYYYMMDD or YYYYMMDD-YYYYMMDD")


class ESPNFeedSource(FeedSource):
    """Scoreboard snapshot source for ``/{sport}/{league}/scoreboard``."""

    def __init__(
        self,
        settings: Settings | None = None,
        metrics: EngineMetrics | None = None,
        http_client: ProviderHTTPClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics()
        self._http = http_client or ProviderHTTPClient(
            "espn",
            self._settings.espn_base_url,
            headers={"Accept": "application/json"},
            timeout_s=self._settings.fetch_timeout_s,
            max_retries=self._settings.feed_max_retries,
            metrics=self._metrics,
        )
        self._path = f"/{self._settings.feed_sport}/{self._settings.feed_league}/scoreboard"
        self._dates = normalize_dates(self._settings.feed_dates)

    @property
    def name(self) -> str:
        return "espn"

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def fetch_snapshot(self) -> GameSnapshot:
        params = {"dates": self._dates} if self._dates else None
        try:
            resp = await self._http.get(self._path, params=params)
        except httpx.HTTPStatusError as exc:
            self._metrics.feed_polls.labels(result="failure").inc()
            raise FetchError(
                FetchErrorKind.BAD_STATUS,
                "invalid status code from API",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TimeoutException as exc:
            self._metrics.feed_polls.labels(result="failure").inc()
            raise FetchError(FetchErrorKind.TIMEOUT, "upstream request timed out") from exc
        except httpx.HTTPError as exc:
            self._metrics.feed_polls.labels(result="failure").inc()
            raise FetchError(FetchErrorKind.NETWORK, str(exc) or type(exc).__name__) from exc
        self._metrics.feed_polls.labels(result="success").inc()

        try:
            snapshot = GameSnapshot.model_validate_json(resp.content)
        except ValidationError as exc:
            self._metrics.feed_decodes.labels(result="failure").inc()
            raise FetchError(FetchErrorKind.DECODE, f"failed to parse scoreboard: {exc.error_count()} errors") from exc
        self._metrics.feed_decodes.labels(result="success").inc()

        logger.debug("scoreboard_decoded", events=len(snapshot.events), path=self._path)
        return snapshot
