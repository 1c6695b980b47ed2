from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventsearch.database import SessionLocal
from eventsearch.schemas import BudgetInput, LocationInput, SearchRequest
from eventsearch.services.search_service import normalize_search_params, search_service


def check_search(session, label: str, request: SearchRequest, predicate, issues: list[str]) -> None:
    page = search_service.comprehensive_search(session, normalize_search_params(request))
    bad = [result.vendor_id for result in page.results if not predicate(result)]
    status = "ok" if not bad else "FAIL"
    print(f"[{status}] {label}: {len(page.results)} of {page.total} (index={page.search_criteria.get('indexHint')})")
    if bad:
        issues.append(f"{label}: unexpected vendors {', '.join(bad[:5])}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run diagnostic vendor searches against the configured database.")
    parser.add_argument("--city", default="Mumbai")
    parser.add_argument("--service", default="photography")
    args = parser.parse_args()

    issues: list[str] = []
    try:
        with SessionLocal() as session:
            check_search(
                session,
                "verified only",
                SearchRequest(verified=True, limit=50),
                lambda result: result.verified,
                issues,
            )
            check_search(
                session,
                "budget overlap 20k-60k",
                SearchRequest(budget=BudgetInput(min=20000, max=60000), limit=50),
                lambda result: result.pricing.min <= 60000 and result.pricing.max >= 20000,
                issues,
            )
            check_search(
                session,
                f"{args.service} in {args.city}",
                SearchRequest(service_type=args.service, location=LocationInput(city=args.city), limit=50),
                lambda result: args.service in result.service_type and args.city.lower() in result.city.lower(),
                issues,
            )
            check_search(
                session,
                "minimum rating 4",
                SearchRequest(rating=4, sort="rating", limit=50),
                lambda result: result.rating >= 4,
                issues,
            )

            first = search_service.comprehensive_search(session, normalize_search_params(SearchRequest(limit=5)))
            expected_pages = math.ceil(first.total / 5)
            if first.total_pages != expected_pages:
                issues.append(f"pagination: totalPages={first.total_pages}, expected {expected_pages}")
            print(f"[{'ok' if first.total_pages == expected_pages else 'FAIL'}] pagination: {first.total} matches")
    except SQLAlchemyError as exc:
        print(f"Search verification could not reach the database: {exc}")
        raise SystemExit(1) from exc

    if issues:
        print("Issues found:")
        for issue in issues:
            print(f"  - {issue}")
        raise SystemExit(1)
    print("All search checks passed.")


if __name__ == "__main__":
    main()
