from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventsearch.config import settings
from eventsearch.services.overpass_client import get_fallback_locations, get_overpass_client


def crontab_line() -> str:
    script = Path(__file__).resolve()
    return f"{settings.prewarm_schedule} cd {ROOT} && {sys.executable} {script}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Warm the Overpass city/area cache.")
    parser.add_argument("--crontab", action="store_true", help="print a crontab entry and exit")
    parser.add_argument("--limit", type=int, default=None, help="only warm the first N cities")
    args = parser.parse_args()

    if args.crontab:
        print(crontab_line())
        return

    client = get_overpass_client()
    cities = get_fallback_locations().known_cities()[: args.limit]
    try:
        print(f"cities: {len(client.fetch_cities())}")
        for city in cities:
            print(f"{city}: {len(client.fetch_areas_for_city(city))} areas")
    finally:
        client.close()

    stats = client.cache_stats()
    print(f"Cache holds {stats['size']} entries via {stats['current_url']}.")


if __name__ == "__main__":
    main()
