from __future__ import annotations

import sys
from pathlib import Path

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventsearch.database import engine
from eventsearch.models import SEARCH_INDEX_NAMES, Vendor


def existing_index_names() -> set[str]:
    return {index["name"] for index in inspect(engine).get_indexes(Vendor.__tablename__)}


def main() -> None:
    try:
        existing = existing_index_names()
        created: list[str] = []
        for index in sorted(Vendor.__table__.indexes, key=lambda item: item.name):
            if index.name in existing:
                continue
            if index.name == "vendor_search_text_index" and engine.dialect.name != "postgresql":
                print(f"skip   {index.name} (PostgreSQL only)")
                continue
            index.create(bind=engine)
            created.append(index.name)
            print(f"create {index.name}")

        existing = existing_index_names()
    except SQLAlchemyError as exc:
        print(f"Index setup failed: {exc}")
        raise SystemExit(1) from exc

    missing = [name for name in SEARCH_INDEX_NAMES if name not in existing]
    if engine.dialect.name != "postgresql":
        missing = [name for name in missing if name != "vendor_search_text_index"]

    print(f"Created {len(created)} index(es); {len(existing)} present on {Vendor.__tablename__}.")
    if missing:
        print(f"Missing indexes: {', '.join(missing)}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
