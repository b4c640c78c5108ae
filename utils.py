import math
import random
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger("tsp_anneal.utils")

EARTH_RADIUS_MILES = 3961.0


@dataclass(frozen=True)
class City:
    name: str
    lat: float
    lon: float


def haversine_miles(lat1, lon1, lat2, lon2):
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi/2)**2 + math.cos(phi1)*math.cos(phi2)*math.sin(dlambda/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c

def distance(a: City, b: City) -> float:
    """Great-circle distance in miles between two cities."""
    return haversine_miles(a.lat, a.lon, b.lat, b.lon)

def score(tour: Sequence[int], cities: Sequence[City]) -> float:
    """Open-path length: the last city is not connected back to the first."""
    total = 0.0
    for i in range(len(tour) - 1):
        total += distance(cities[tour[i]], cities[tour[i+1]])
    return total

def pairwise_distance_matrix(cities: Sequence[City]) -> np.ndarray:
    n = len(cities)
    D = np.zeros((n, n), dtype=float)
    for i in range(n):
        for j in range(i+1, n):
            d = distance(cities[i], cities[j])
            D[i, j] = D[j, i] = d
    return D

def route_length(route: Sequence[int], D: np.ndarray) -> float:
    total = 0.0
    for i in range(len(route) - 1):
        total += D[route[i], route[i+1]]
    return float(total)

def random_permutation(n: int, rng: random.Random) -> List[int]:
    # draw-and-reject until every index has been placed once
    perm = []
    seen = set()
    while len(perm) < n:
        city = rng.randrange(n)
        if city in seen:
            continue
        seen.add(city)
        perm.append(city)
    return perm

class ConvergenceTracker:
    def __init__(self):
        self.best_cost = float("inf")
        self.best_iter = -1
        self.history = []

    def update(self, iter_idx: int, cost: float):
        if cost < self.best_cost - 1e-12:
            self.best_cost = cost
            self.best_iter = iter_idx
        self.history.append((iter_idx, self.best_cost))

    @property
    def time_convergence_iter(self) -> int:
        return self.best_iter + 1

def load_real_cities(path, max_n: Optional[int] = None, has_header: bool = False) -> List[City]:
    """
    Read ``name,lat,lon`` records into cities.

    Records must have exactly three fields. Non-numeric or missing coordinates
    raise ValueError; the optimizer itself does not re-validate them.
    """
    try:
        df = pd.read_csv(path, header=0 if has_header else None, dtype=str,
                         skipinitialspace=True, skip_blank_lines=True,
                         keep_default_na=False, na_values=[])
    except pd.errors.ParserError as exc:
        raise ValueError(f"{path}: malformed city records ({exc})") from exc
    if df.shape[1] != 3:
        raise ValueError(f"{path}: expected 3 fields per record (name, lat, lon), got {df.shape[1]}")
    df.columns = ["name", "lat", "lon"]
    if max_n is not None:
        df = df.iloc[:max_n].copy()

    for col in ("lat", "lon"):
        values = pd.to_numeric(df[col].str.strip(), errors="coerce")
        bad = ~np.isfinite(values.to_numpy(dtype=float, na_value=np.nan))
        if bad.any():
            row = int(np.flatnonzero(bad)[0])
            raise ValueError(f"{path}: record {row + 1} has invalid {col} {df[col].iloc[row]!r}")
        df[col] = values

    cities = [City(str(r.name).strip(), float(r.lat), float(r.lon)) for r in df.itertuples(index=False)]
    logger.info("Loaded %d cities from %s", len(cities), path)
    return cities

def generate_simulated_cities(n: int, seed: int = 0,
                              lat_range=(25.0, 49.0),
                              lon_range=(-124.0, -67.0)) -> List[City]:
    rng = np.random.default_rng(seed)
    lats = rng.uniform(lat_range[0], lat_range[1], size=n)
    lons = rng.uniform(lon_range[0], lon_range[1], size=n)
    return [City(f"C{i}", float(lat), float(lon)) for i, (lat, lon) in enumerate(zip(lats, lons))]
