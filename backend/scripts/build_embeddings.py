from __future__ import annotations

import sys
from pathlib import Path

from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventsearch.database import session_scope
from eventsearch.models import Vendor
from eventsearch.services.embedding_service import get_embedding_service

BATCH_SIZE = 64


def main() -> None:
    embedding_service = get_embedding_service()
    updated = 0
    with session_scope() as session:
        vendors = session.execute(select(Vendor).order_by(Vendor.id.asc())).scalars().all()
        for start in range(0, len(vendors), BATCH_SIZE):
            batch = vendors[start : start + BATCH_SIZE]
            for vendor, vector in zip(batch, embedding_service.encode_vendors(batch), strict=True):
                vendor.embedding = vector
            updated += len(batch)

    source = "model" if embedding_service.model_loaded else "hash fallback"
    print(f"Embedded {updated} vendors ({source}).")


if __name__ == "__main__":
    main()
