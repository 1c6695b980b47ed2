import argparse
import sys
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventsearch import models  # noqa: F401  registers tables on Base.metadata
from eventsearch.database import Base, engine


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the vendor search schema.")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    try:
        with engine.begin() as conn:
            if conn.dialect.name == "postgresql":
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            if args.drop:
                Base.metadata.drop_all(bind=conn)
            Base.metadata.create_all(bind=conn)
    except SQLAlchemyError as exc:
        print(f"Schema setup failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    print(f"Schema ready on {engine.dialect.name}: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
