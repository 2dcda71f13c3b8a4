"""ERS usage summary."""

import math
from typing import Optional, Sequence

from ..config import ERS_MAX_LOAD
from .models import AnalysisLap, ERSMetrics


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def _mean(values):
    return sum(values) / len(values) if values else None


def calculate_ers_metrics(laps: Sequence[AnalysisLap]) -> ERSMetrics:
    """
    Average store level, deployment and harvest as % of the store capacity,
    plus deployed/harvested totals in Joules.

    Every lap is considered, with or without a lap time. Harvest is MGU-K
    plus MGU-H; laps that harvested nothing are left out of the average.
    """
    remaining = []
    deployed = []
    harvested = []
    total_deployed = 0.0
    total_harvested = 0.0

    for lap in laps:
        if _finite(lap.ers_store_energy):
            remaining.append(lap.ers_store_energy / ERS_MAX_LOAD * 100)

        if _finite(lap.ers_deployed_this_lap):
            deployed.append(lap.ers_deployed_this_lap / ERS_MAX_LOAD * 100)
            total_deployed += lap.ers_deployed_this_lap

        mguk = lap.ers_harvested_this_lap_mguk if _finite(lap.ers_harvested_this_lap_mguk) else 0.0
        mguh = lap.ers_harvested_this_lap_mguh if _finite(lap.ers_harvested_this_lap_mguh) else 0.0
        total = mguk + mguh
        if total > 0:
            harvested.append(total / ERS_MAX_LOAD * 100)
            total_harvested += total

    return ERSMetrics(
        average_remaining=_mean(remaining),
        average_deployed=_mean(deployed),
        average_harvested=_mean(harvested),
        total_deployed=total_deployed if total_deployed > 0 else None,
        total_harvested=total_harvested if total_harvested > 0 else None,
    )
