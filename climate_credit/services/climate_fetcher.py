# climate_credit/services/climate_fetcher.py

import logging
import math
from typing import Any, Dict, List, Optional

import requests

from climate_credit.core.config import Settings, settings as default_settings
from climate_credit.core.errors import InvalidLocation
from climate_credit.core.policy import FallbackBand, RiskPolicy
from climate_credit.schemas.climate import (
    ClimateSnapshot,
    ClimateSource,
    HazardType,
    SnapshotLocation,
    WeatherSummary,
)

logger = logging.getLogger(__name__)


def validate_coordinates(latitude: float, longitude: float) -> None:
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        raise InvalidLocation(f"Coordinates must be numbers, got ({latitude!r}, {longitude!r})") from None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidLocation("Coordinates must be finite numbers")
    if not -90.0 <= lat <= 90.0:
        raise InvalidLocation(f"Latitude {lat} is outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidLocation(f"Longitude {lng} is outside [-180, 180]")


class ClimateFetcher:
    """
    Resolves a coordinate pair to hazard indicators.

    Tries the live forecast source first. Any upstream problem (timeout,
    connection error, bad status, unusable payload) degrades to a synthetic
    snapshot looked up from latitude bands, so assessments never block on
    the network.
    """

    def __init__(
        self,
        policy: RiskPolicy,
        config: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        config = config or default_settings
        self.policy = policy
        self.base_url = config.CLIMATE_API_URL
        self.timeout = config.REQUEST_TIMEOUT_SECONDS
        self.live_enabled = config.CLIMATE_LIVE_ENABLED
        self.forecast_days = config.CLIMATE_FORECAST_DAYS
        self.session = session or requests.Session()

    def fetch(self, latitude: float, longitude: float) -> ClimateSnapshot:
        validate_coordinates(latitude, longitude)
        latitude, longitude = float(latitude), float(longitude)

        if not self.live_enabled:
            return self.fallback_snapshot(latitude, longitude)

        try:
            payload = self._request_forecast(latitude, longitude)
            return self._snapshot_from_forecast(latitude, longitude, payload)
        except requests.Timeout:
            logger.warning(
                "UpstreamTimeout: climate source did not answer within %ss for (%.4f, %.4f); using fallback",
                self.timeout, latitude, longitude,
            )
        except requests.RequestException as e:
            logger.warning("Climate source unavailable (%s); using fallback", e)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Climate source returned an unusable payload (%s); using fallback", e)

        return self.fallback_snapshot(latitude, longitude)

    def fallback_snapshot(self, latitude: float, longitude: float) -> ClimateSnapshot:
        """Deterministic synthetic snapshot: same coordinates, same result."""
        validate_coordinates(latitude, longitude)
        band = self._band_for(latitude)
        hemisphere = "Northern" if latitude >= 0 else "Southern"
        return ClimateSnapshot(
            source=ClimateSource.FALLBACK,
            latitude=float(latitude),
            longitude=float(longitude),
            location=SnapshotLocation(region=f"{hemisphere} {band.name.lower()}"),
            hazards=dict(band.hazards),
            weather=WeatherSummary(description=band.description),
        )

    # ------------------------------------------------------------------
    # Live source
    # ------------------------------------------------------------------
    def _request_forecast(self, latitude: float, longitude: float) -> Dict[str, Any]:
        response = self.session.get(
            self.base_url,
            params={
                "latitude": latitude,
                "longitude": longitude,
                "daily": "precipitation_sum,temperature_2m_max",
                "forecast_days": self.forecast_days,
                "timezone": "auto",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def _snapshot_from_forecast(
        self, latitude: float, longitude: float, payload: Dict[str, Any]
    ) -> ClimateSnapshot:
        daily = payload["daily"]
        precipitation = _clean_series(daily["precipitation_sum"])
        max_temps = _clean_series(daily["temperature_2m_max"])
        if not precipitation or not max_temps:
            raise ValueError("forecast has no usable daily values")

        live = self.policy.live
        total_precip = sum(precipitation)
        dry_days = sum(1 for p in precipitation if p < live.dry_day_mm)
        heat_excess = sum(max(0.0, t - live.heat_threshold_c) for t in max_temps) / len(max_temps)

        hazards = {
            HazardType.FLOOD: _clamp01(total_precip / live.flood_reference_mm),
            HazardType.DROUGHT: _clamp01(dry_days / len(precipitation)),
            HazardType.HEATWAVE: _clamp01(heat_excess / live.heat_span_c),
        }
        avg_max = sum(max_temps) / len(max_temps)
        band = self._band_for(latitude)
        hemisphere = "Northern" if latitude >= 0 else "Southern"

        return ClimateSnapshot(
            source=ClimateSource.LIVE,
            latitude=latitude,
            longitude=longitude,
            location=SnapshotLocation(
                region=f"{hemisphere} {band.name.lower()}",
                timezone=payload.get("timezone"),
            ),
            hazards=hazards,
            weather=WeatherSummary(
                description=(
                    f"{len(precipitation)}-day forecast: {total_precip:.0f} mm rain, "
                    f"{dry_days} dry days, average high {avg_max:.1f}°C"
                ),
                forecast_days=len(precipitation),
                total_precipitation_mm=round(total_precip, 1),
                avg_max_temperature_c=round(avg_max, 1),
            ),
        )

    def _band_for(self, latitude: float) -> FallbackBand:
        abs_lat = abs(float(latitude))
        for band in self.policy.fallback_bands:
            if band.abs_lat_min <= abs_lat < band.abs_lat_max:
                return band
        # abs_lat == 90.0 lands on the upper edge of the last band
        return max(self.policy.fallback_bands, key=lambda b: b.abs_lat_max)


def _clean_series(values: List[Any]) -> List[float]:
    return [float(v) for v in values if v is not None]


def _clamp01(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 4)
