from __future__ import annotations

import argparse
from pathlib import Path

from graph_er.datasets import ReferenceDatasetGenerator, write_csv


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic person/organization CSV with duplicates")
    parser.add_argument("--size", type=int, default=10000)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--duplicate-rate", type=float, default=0.15)
    parser.add_argument("--organization-rate", type=float, default=0.2)
    parser.add_argument("--output", type=Path, default=Path("data/reference_entities.csv"))
    args = parser.parse_args()

    rows = ReferenceDatasetGenerator(seed=args.seed).generate(
        size=args.size,
        duplicate_rate=args.duplicate_rate,
        organization_rate=args.organization_rate,
    )
    write_csv(args.output, rows)
    print(f"Wrote {len(rows)} rows to {args.output}")


if __name__ == "__main__":
    main()
