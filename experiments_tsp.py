"""
Solve a city file with simulated annealing, or run a benchmark suite over
simulated instances of varying size.

Suite mode records best costs, runtimes and time-convergence iterations,
and saves a summary CSV plus plots into outputs/.
"""
from dataclasses import replace
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence
import argparse
import logging
import sys

import pandas as pd
import matplotlib
matplotlib.use("Agg")  # headless backend for tests / CI
import matplotlib.pyplot as plt

from config import AnnealConfig, ConfigError, load_config
from utils import City, load_real_cities, generate_simulated_cities
from tsp_sa import run_sa, run_restarts

logger = logging.getLogger("tsp_anneal.cli")


def format_route(route: Sequence[int], cities: Sequence[City], sep: str = "-->") -> str:
    return sep.join(cities[i].name for i in route)


def solve_file(path, config: AnnealConfig, restarts: int = 1) -> Dict[str, Any]:
    cities = load_real_cities(path)
    if restarts > 1:
        res = run_restarts(cities, config, n_restarts=restarts)
    else:
        res = run_sa(cities, config)
    res["cities"] = cities
    return res


def plot_convergence(history, title="Convergence curve", path: Optional[Path] = None):
    iters = [h[0] for h in history]; bests = [h[1] for h in history]
    plt.figure(); plt.plot(iters, bests)
    plt.xlabel("Iteration"); plt.ylabel("Best path so far (miles)"); plt.title(title)
    plt.grid(True); plt.tight_layout()
    if path is not None:
        plt.savefig(path)
    plt.close()


def plot_route(cities: Sequence[City], route: Sequence[int], title="Best path", path: Optional[Path] = None):
    lons = [cities[i].lon for i in route]; lats = [cities[i].lat for i in route]
    plt.figure()
    plt.scatter([c.lon for c in cities], [c.lat for c in cities], s=20, label="cities")
    plt.plot(lons, lats, linewidth=1.6, label="path")
    if route:
        plt.scatter([lons[0]], [lats[0]], marker="*", s=160, label="start")
    plt.xlabel("Longitude"); plt.ylabel("Latitude")
    plt.title(title); plt.legend(); plt.grid(True); plt.tight_layout()
    if path is not None:
        plt.savefig(path)
    plt.close()


def run_suite(sizes=(10, 20, 40), seed=0, outdir=Path("outputs"),
              config: Optional[AnnealConfig] = None) -> Path:
    base = config or AnnealConfig()
    rows = []
    outdir = Path(outdir)
    outdir.mkdir(exist_ok=True, parents=True)
    for n in sizes:
        # deterministic per-size seed derived from provided seed
        cur_seed = int(seed) + int(n)
        cities = generate_simulated_cities(n, seed=cur_seed)
        cfg = replace(base, seed=cur_seed)

        logger.info("=== N=%d (seed=%d) ===", n, cur_seed)
        sa = run_sa(cities, cfg)
        rows.append({
            "n": n,
            "algo": "SA",
            "best_cost": sa["best_cost"],
            "runtime_sec": sa["runtime"],
            "time_convergence_iter": sa["time_convergence_iter"],
        })
        plot_convergence(sa["history"], title=f"SA convergence (n={n})",
                         path=outdir / f"tsp_sa_convergence_n{n}.png")
        plot_route(cities, sa["route"], title=f"SA best path (n={n})",
                   path=outdir / f"tsp_sa_route_n{n}.png")

    df = pd.DataFrame(rows)
    csv_path = outdir / "tsp_sa_summary.csv"
    df.to_csv(csv_path, index=False)

    # Plot runtime vs n
    plt.figure()
    plt.plot(df["n"], df["runtime_sec"], marker="o", label="SA")
    plt.xlabel("Cities (n)"); plt.ylabel("Runtime (s)"); plt.title("TSP runtime vs n")
    plt.legend(); plt.grid(True); plt.tight_layout()
    plt.savefig(outdir / "tsp_runtime_vs_n.png")
    plt.close()

    return csv_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulated annealing for geographic TSP")
    parser.add_argument("--iters", type=int, default=None, help="maximum number of iterations")
    parser.add_argument("--start-temp", type=float, default=None)
    parser.add_argument("--end-temp", type=float, default=None)
    parser.add_argument("--cycles", type=int, default=None, help="swap trials per iteration")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--legacy-rollback", action="store_true", default=None,
                        help="keep the trial score when a non-improving move is rolled back")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    solve = sub.add_parser("solve", help="solve a name,lat,lon city file")
    solve.add_argument("path", type=Path)
    solve.add_argument("--restarts", type=int, default=1)

    suite = sub.add_parser("suite", help="benchmark on simulated instances")
    suite.add_argument("--sizes", type=int, nargs="+", default=[10, 20, 40])
    suite.add_argument("--outdir", type=Path, default=Path("outputs"))
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    try:
        config = load_config(max_iterations=args.iters, start_temp=args.start_temp,
                             end_temp=args.end_temp, cycles_per_iteration=args.cycles,
                             seed=args.seed, legacy_rollback=args.legacy_rollback)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    if args.command == "suite":
        csv_path = run_suite(sizes=args.sizes, seed=config.seed if config.seed is not None else 0,
                             outdir=args.outdir, config=config)
        print(f"Summary written to {csv_path}")
        return 0

    try:
        res = solve_file(args.path, config, restarts=args.restarts)
    except (OSError, ValueError) as exc:
        logger.error("Solve failed: %s", exc)
        return 1
    print("Best path:")
    print(format_route(res["route"], res["cities"]))
    print(f"Total: {res['best_cost']:.2f} miles")
    return 0


if __name__ == "__main__":
    sys.exit(main())
