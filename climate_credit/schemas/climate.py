# climate_credit/schemas/climate.py

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class HazardType(str, Enum):
    FLOOD = "flood"
    DROUGHT = "drought"
    HEATWAVE = "heatwave"


HAZARD_LABELS = {
    HazardType.FLOOD: "Flood Risk",
    HazardType.DROUGHT: "Drought Risk",
    HazardType.HEATWAVE: "Heat Stress",
}


class ClimateSource(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


class SnapshotLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    region: str
    country: Optional[str] = None
    timezone: Optional[str] = None


class WeatherSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    forecast_days: Optional[int] = None
    total_precipitation_mm: Optional[float] = None
    avg_max_temperature_c: Optional[float] = None


class ClimateSnapshot(BaseModel):
    """Hazard indicators for one location, immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    source: ClimateSource
    latitude: float
    longitude: float
    location: SnapshotLocation
    hazards: Dict[HazardType, float]
    weather: WeatherSummary

    @field_validator("hazards")
    @classmethod
    def check_hazard_range(cls, v: Dict[HazardType, float]) -> Dict[HazardType, float]:
        missing = [h.value for h in HazardType if h not in v]
        if missing:
            raise ValueError(f"Missing hazard indicators: {', '.join(missing)}")
        for hazard, value in v.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{hazard.value} probability {value} is outside [0, 1]")
        return v

    def hazard(self, hazard: HazardType) -> float:
        return self.hazards[hazard]
