import argparse
import asyncio
import os
import sys
from datetime import datetime

# Add the project root directory to the python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from checkin_explorer.core.config import settings
from checkin_explorer.models import GeoBounds, SearchCriteria
from checkin_explorer.orchestrator import QueryOrchestrator
from checkin_explorer.store.factory import build_store


class TraceLog:
    """Echoes each trace line to the console and appends it to a log file."""

    def __init__(self, path=None):
        self.path = path
        self._file = None

    def __enter__(self):
        if self.path:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            self._file = open(self.path, "a")
        return self

    def __exit__(self, *exc):
        if self._file is not None:
            self._file.close()
            self._file = None

    def __call__(self, text=""):
        print(text, flush=True)
        if self._file is not None:
            self._file.write(text + "\n")
            self._file.flush()


def fmt(c):
    return (
        f"user={c.user_id} loc={c.location_id} "
        f"({c.latitude:.4f}, {c.longitude:.4f}) @ {c.timestamp.isoformat()}"
    )


async def trace(orchestrator, user_id, start, end, radius_km, bounds, out=print):
    out(f"\n{'='*60}")
    out(f"USER {user_id}  {start.date()} -> {end.date()}  radius={radius_km}km")
    out(f"{'='*60}")

    # 1. Trajectory + companions
    out("\n--- [1] Trajectory ---")
    points = await orchestrator.build_trajectory(user_id, start, end, radius_km)
    out(f"Points: {len(points)}")
    for i, p in enumerate(points[:10]):
        out(f"[{i+1}] {fmt(p)}")
        for c in p.companions[:3]:
            out(f"      companion {fmt(c)}")

    # 2. Custom search, each sort mode
    out("\n--- [2] Custom Search ---")
    for mode in ("time-desc", "time-asc", "distance-asc", "distance-desc"):
        results = await orchestrator.search(
            SearchCriteria(user_id=user_id, sort_mode=mode, limit=10)
        )
        out(f"  > {mode}: {len(results)} results")
        for c in results[:3]:
            out(f"    {fmt(c)}")

    # 3. Popular locations
    out("\n--- [3] Popular Locations (Top 10) ---")
    pois = await orchestrator.rank_popular_locations(start, end, bounds, 10)
    for i, r in enumerate(pois):
        out(
            f"#{i+1} loc={r.location_id} checkins={r.check_in_count} "
            f"users={r.unique_user_count} ({r.latitude:.4f}, {r.longitude:.4f})"
        )


async def main():
    parser = argparse.ArgumentParser(description="Trace the check-in queries")
    parser.add_argument("--user", type=int, default=1)
    parser.add_argument("--start", default="2010-01-01")
    parser.add_argument("--end", default="2011-12-31")
    parser.add_argument("--radius", type=float, default=5.0)
    parser.add_argument(
        "--bounds",
        default="41.0,40.4,-73.7,-74.3",
        help="north,south,east,west",
    )
    args = parser.parse_args()

    north, south, east, west = (float(v) for v in args.bounds.split(","))
    store = build_store()
    orchestrator = QueryOrchestrator(store)
    try:
        with TraceLog(settings.TRACE_LOG_PATH) as out:
            await trace(
                orchestrator,
                args.user,
                datetime.fromisoformat(args.start),
                datetime.fromisoformat(args.end),
                args.radius,
                GeoBounds(north=north, south=south, east=east, west=west),
                out=out,
            )
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
