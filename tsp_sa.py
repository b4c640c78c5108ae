from typing import Dict, Any, List, Optional, Callable, Sequence
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
import logging
import random, math, time

import numpy as np

from config import AnnealConfig, ConfigError
from utils import City, route_length, pairwise_distance_matrix, random_permutation, ConvergenceTracker

logger = logging.getLogger("tsp_anneal.sa")

ProgressCallback = Callable[[int, float], None]


@dataclass
class AnnealState:
    """Run state owned by one optimizer. Tours are permutations of 0..N-1."""
    iteration: int = 0
    current_tour: List[int] = field(default_factory=list)
    best_tour: List[int] = field(default_factory=list)
    backup_tour: List[int] = field(default_factory=list)
    current_score: float = 0.0
    prev_score: float = 0.0
    best_score: float = float("inf")
    temperature: float = 0.0
    last_probability: float = 0.0
    finished: bool = False

    def snapshot(self) -> "AnnealState":
        return AnnealState(
            iteration=self.iteration,
            current_tour=self.current_tour[:],
            best_tour=self.best_tour[:],
            backup_tour=self.backup_tour[:],
            current_score=self.current_score,
            prev_score=self.prev_score,
            best_score=self.best_score,
            temperature=self.temperature,
            last_probability=self.last_probability,
            finished=self.finished,
        )


class AnnealingOptimizer:
    """
    Simulated annealing over open-path city tours.

    Each iteration cools the temperature along
    ``start_temp * (end_temp / start_temp) ** (iteration / max_iterations)``
    and tries ``cycles_per_iteration`` random swaps, accepting by the
    Metropolis rule. ``on_progress(iteration, best_score)`` fires whenever the
    best score changed during an iteration; ``should_stop()`` is polled
    between iterations.
    """

    def __init__(self,
                 max_iterations: int,
                 start_temp: float,
                 end_temp: float,
                 cycles_per_iteration: int = 100,
                 rng: Optional[random.Random] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 should_stop: Optional[Callable[[], bool]] = None,
                 legacy_rollback: bool = False):
        self.config = AnnealConfig(
            max_iterations=max_iterations,
            start_temp=start_temp,
            end_temp=end_temp,
            cycles_per_iteration=cycles_per_iteration,
            legacy_rollback=legacy_rollback,
        ).validate()
        self.rng = rng if rng is not None else random.Random()
        self.on_progress = on_progress
        self.should_stop = should_stop
        self.tracker = ConvergenceTracker()
        self._state: Optional[AnnealState] = None
        self._D: Optional[np.ndarray] = None
        self._n = 0

    @classmethod
    def from_config(cls, config: AnnealConfig, rng: Optional[random.Random] = None, **kwargs):
        if rng is None:
            rng = random.Random(config.seed)
        return cls(config.max_iterations, config.start_temp, config.end_temp,
                   cycles_per_iteration=config.cycles_per_iteration,
                   rng=rng, legacy_rollback=config.legacy_rollback, **kwargs)

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> AnnealState:
        return self._require_state().snapshot()

    @property
    def best_tour(self) -> List[int]:
        return self._require_state().best_tour[:]

    @property
    def current_tour(self) -> List[int]:
        return self._require_state().current_tour[:]

    @property
    def best_score(self) -> float:
        return self._require_state().best_score

    @property
    def history(self):
        return list(self.tracker.history)

    def _require_state(self) -> AnnealState:
        if self._state is None:
            raise RuntimeError("optimizer is not initialized; call initialize(cities) first")
        return self._state

    def initialize(self, cities: Sequence[City]) -> None:
        if len(cities) == 0:
            raise ValueError("at least one city is required")
        self._n = len(cities)
        self._D = pairwise_distance_matrix(cities)
        tour = random_permutation(self._n, self.rng)
        first = route_length(tour, self._D)
        self._state = AnnealState(
            current_tour=tour,
            best_tour=tour[:],
            backup_tour=tour[:],
            current_score=first,
            prev_score=first,
            best_score=first,
            temperature=self.config.start_temp,
        )
        self.tracker = ConvergenceTracker()
        self.tracker.update(0, first)
        logger.debug("Initialized %d cities, initial path %.2f miles", self._n, first)

    # ------------------------------------------------------------- schedule

    def temperature(self, iteration: int) -> float:
        cfg = self.config
        exp = iteration / cfg.max_iterations
        return cfg.start_temp * math.pow(cfg.end_temp / cfg.start_temp, exp)

    @staticmethod
    def acceptance_probability(trial_score: float, current_score: float, temp: float) -> float:
        return math.exp(-abs(current_score - trial_score) / temp)

    # ----------------------------------------------------------------- moves

    def randomize(self) -> None:
        """Swap two distinct random positions of the current tour in place."""
        tour = self._require_state().current_tour
        r = self.rng.randrange(self._n)
        r2 = self.rng.randrange(self._n)
        while r2 == r:
            r2 = self.rng.randrange(self._n)
        tour[r], tour[r2] = tour[r2], tour[r]

    def cycle(self, temp: float) -> bool:
        """One trial move at ``temp``. Returns True if the move was accepted."""
        st = self._require_state()
        if self._n < 2:
            return False
        st.backup_tour[:] = st.current_tour
        self.randomize()
        trial = route_length(st.current_tour, self._D)

        keep = False
        if trial < st.current_score:
            keep = True
        else:
            st.last_probability = self.acceptance_probability(trial, st.current_score, temp)
            if st.last_probability > self.rng.random():
                keep = True

        if self.config.legacy_rollback:
            if keep:
                st.current_score = trial
                if st.current_score < st.best_score:
                    st.best_score = st.current_score
                    st.best_tour[:] = st.current_tour
                else:
                    st.current_tour[:] = st.backup_tour
            return keep

        if keep:
            st.current_score = trial
            if trial < st.best_score:
                st.best_score = trial
                st.best_tour[:] = st.current_tour
        else:
            st.current_tour[:] = st.backup_tour
        return keep

    # ------------------------------------------------------------------ loop

    def iteration(self) -> None:
        st = self._require_state()
        st.iteration += 1
        st.temperature = self.temperature(st.iteration)

        for _ in range(self.config.cycles_per_iteration):
            self.cycle(st.temperature)

        if st.best_score != st.prev_score:
            logger.info("Iteration #%d Shortest Path: %.2f miles", st.iteration, st.best_score)
            if self.on_progress is not None:
                self.on_progress(st.iteration, st.best_score)
        st.prev_score = st.best_score
        self.tracker.update(st.iteration, st.best_score)

    def run(self) -> List[int]:
        st = self._require_state()
        if self._n < 2:
            st.best_score = 0.0
            st.finished = True
            return st.best_tour[:]

        while not st.finished:
            if self.should_stop is not None and self.should_stop():
                logger.info("Stopped at iteration %d of %d", st.iteration, self.config.max_iterations)
                break
            self.iteration()
            if st.iteration >= self.config.max_iterations:
                st.finished = True
        return st.best_tour[:]


def run_sa(cities: Sequence[City],
           config: Optional[AnnealConfig] = None,
           rng: Optional[random.Random] = None,
           on_progress: Optional[ProgressCallback] = None,
           should_stop: Optional[Callable[[], bool]] = None) -> Dict[str, Any]:
    config = (config or AnnealConfig()).validate()
    opt = AnnealingOptimizer.from_config(config, rng=rng, on_progress=on_progress, should_stop=should_stop)

    t0 = time.time()
    opt.initialize(cities)
    route = opt.run()
    runtime = time.time() - t0
    st = opt.state
    return {"route": route, "best_cost": st.best_score, "history": opt.history,
            "time_convergence_iter": opt.tracker.time_convergence_iter, "runtime": runtime,
            "iterations": st.iteration, "seed": config.seed}


def _restart(cities: List[City], config: AnnealConfig, seed: int) -> Dict[str, Any]:
    res = run_sa(cities, config, rng=random.Random(seed))
    res["seed"] = seed
    return res


def run_restarts(cities: Sequence[City],
                 config: Optional[AnnealConfig] = None,
                 n_restarts: int = 4,
                 max_workers: Optional[int] = None) -> Dict[str, Any]:
    """
    Best of ``n_restarts`` independent runs in separate worker processes.

    Run ``k`` uses ``random.Random(base_seed + k)``, so any restart can be
    replayed with ``run_sa`` and the reported seed.
    """
    if n_restarts <= 0:
        raise ConfigError(f"n_restarts must be > 0, got {n_restarts}")
    config = (config or AnnealConfig()).validate()
    base_seed = config.seed if config.seed is not None else random.randrange(2**31)

    cities = list(cities)

    t0 = time.time()
    with ProcessPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(_restart, cities, config, base_seed + k) for k in range(n_restarts)]
        results = [f.result() for f in futures]
    best = min(results, key=lambda r: r["best_cost"])
    logger.info("Best of %d restarts: %.2f miles (seed=%d)", n_restarts, best["best_cost"], best["seed"])
    out = dict(best)
    out["restart_costs"] = [r["best_cost"] for r in results]
    out["runtime"] = time.time() - t0
    return out
