from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from graph_er.audit import AuditTrail, audit_entry_to_dict
from graph_er.config import EngineSettings, load_settings
from graph_er.datasets import ReferenceDatasetGenerator, write_csv
from graph_er.errors import ConfigError, ResolutionError
from graph_er.ids import generate_batch_id
from graph_er.logging import configure_logging
from graph_er.models import BatchStatus, ClusterStatus, ProgressUpdate
from graph_er.queries import ResolutionQueries
from graph_er.runners import LocalBatchPipeline
from graph_er.storage import Database, SqlAuditStore, SqlGraphStore

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_FAILED

    if args.command == "generate":
        rows = ReferenceDatasetGenerator(seed=args.seed).generate(
            size=args.size,
            duplicate_rate=args.duplicate_rate,
            organization_rate=args.organization_rate,
        )
        write_csv(args.output, rows)
        _print_json({"output": str(args.output), "rows": len(rows)})
        return EXIT_SUCCESS

    try:
        settings = load_settings(args.config, overlay_path=args.overlay, database_url=args.database_url)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    configure_logging(args.log_level or settings.log_level, settings.log_dir)

    try:
        return _dispatch(args, settings)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except ResolutionError as exc:
        logger.error("Command failed: %s", exc, extra={"error_code": exc.error_code})
        return EXIT_FAILED


def _dispatch(args: argparse.Namespace, settings: EngineSettings) -> int:
    database = Database.from_url(settings.database_url)
    try:
        database.ensure_schema()
        return _run_command(args, settings, SqlGraphStore(database), SqlAuditStore(database))
    finally:
        database.dispose()


def _run_command(
    args: argparse.Namespace, settings: EngineSettings, store: SqlGraphStore, audit_store: SqlAuditStore
) -> int:
    audit = AuditTrail(audit_store, store)
    queries = ResolutionQueries(store, audit)

    if args.command == "process":
        pipeline = LocalBatchPipeline(store, audit, settings.resolution)
        on_progress = _print_progress if args.progress else None
        result = pipeline.process_batch(
            args.input,
            args.batch_id or generate_batch_id(),
            on_progress=on_progress,
            uploaded_by=args.uploaded_by,
        )
        _print_json(result.to_dict())
        return EXIT_SUCCESS if result.status == BatchStatus.COMPLETED else EXIT_FAILED

    if args.command == "report":
        summary = queries.audit_summary(args.batch_id)
        if summary is None:
            print(f"No audit trail for batch {args.batch_id}", file=sys.stderr)
            return EXIT_FAILED
        _print_json(summary)
        return EXIT_SUCCESS

    if args.command == "trail":
        _print_json([audit_entry_to_dict(entry) for entry in queries.audit_trail(args.batch_id)])
        return EXIT_SUCCESS

    if args.command == "quality":
        _print_json(queries.match_quality(args.batch_id))
        return EXIT_SUCCESS

    if args.command == "export":
        end = args.end or datetime.now(tz=timezone.utc)
        entries = audit.export_range(args.start, end)
        payload = [audit_entry_to_dict(entry) for entry in entries]
        if args.output is None:
            _print_json(payload)
        else:
            _write_json(args.output, payload)
            print(f"Exported {len(payload)} audit entries to {args.output}")
        return EXIT_SUCCESS

    if args.command == "metrics":
        _print_json(queries.aggregate_metrics(args.start, args.end))
        return EXIT_SUCCESS

    if args.command == "golden":
        if args.id:
            record = queries.golden_record(args.id)
            if record is None:
                print(f"Golden record {args.id} not found", file=sys.stderr)
                return EXIT_FAILED
            _print_json(record)
            return EXIT_SUCCESS
        page = queries.golden_records(
            page=args.page,
            limit=args.limit,
            name=args.name,
            email=args.email,
            batch_id=args.batch_id,
            min_confidence=args.min_confidence,
            max_confidence=args.max_confidence,
        )
        _print_json(_page_payload(page))
        return EXIT_SUCCESS

    if args.command == "clusters":
        status = ClusterStatus(args.status) if args.status else None
        _print_json(_page_payload(queries.clusters(page=args.page, limit=args.limit, status=status)))
        return EXIT_SUCCESS

    if args.command == "batches":
        status = BatchStatus(args.status) if args.status else None
        _print_json(_page_payload(queries.batches(page=args.page, limit=args.limit, status=status)))
        return EXIT_SUCCESS

    raise ValueError(f"Unknown command: {args.command}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="graph-er", description="Entity resolution engine CLI")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--overlay", type=Path, default=None, help="YAML file deep-merged over --config")
    parser.add_argument("--database-url", type=str, default=None)
    parser.add_argument("--log-level", type=str, default=None)
    subparsers = parser.add_subparsers(dest="command")

    process_parser = subparsers.add_parser("process", help="Resolve one CSV batch into golden records")
    process_parser.add_argument("input", type=Path)
    process_parser.add_argument("--batch-id", type=str, default=None)
    process_parser.add_argument("--uploaded-by", type=str, default="system")
    process_parser.add_argument("--progress", action="store_true", help="Print stage progress to stderr")

    for name, help_text in (
        ("report", "Audit summary for a batch"),
        ("trail", "Chronological audit trail for a batch"),
        ("quality", "Low-score links that may be false positives"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("batch_id", type=str)

    export_parser = subparsers.add_parser("export", help="Export audit entries in a time range")
    export_parser.add_argument("--start", type=_parse_datetime, required=True)
    export_parser.add_argument("--end", type=_parse_datetime, default=None)
    export_parser.add_argument("--output", type=Path, default=None)

    metrics_parser = subparsers.add_parser("metrics", help="Aggregate metrics (default: last 30 days)")
    metrics_parser.add_argument("--start", type=_parse_datetime, default=None)
    metrics_parser.add_argument("--end", type=_parse_datetime, default=None)

    golden_parser = subparsers.add_parser("golden", help="Look up or search golden records")
    golden_parser.add_argument("--id", type=str, default=None)
    golden_parser.add_argument("--name", type=str, default=None)
    golden_parser.add_argument("--email", type=str, default=None)
    golden_parser.add_argument("--batch-id", type=str, default=None)
    golden_parser.add_argument("--min-confidence", type=float, default=None)
    golden_parser.add_argument("--max-confidence", type=float, default=None)
    _add_paging(golden_parser)

    clusters_parser = subparsers.add_parser("clusters", help="List match clusters")
    clusters_parser.add_argument("--status", choices=[status.value for status in ClusterStatus], default=None)
    _add_paging(clusters_parser)

    batches_parser = subparsers.add_parser("batches", help="List batches")
    batches_parser.add_argument("--status", choices=[status.value for status in BatchStatus], default=None)
    _add_paging(batches_parser)

    generate_parser = subparsers.add_parser("generate", help="Write a synthetic CSV with intentional duplicates")
    generate_parser.add_argument("--size", type=int, default=2000)
    generate_parser.add_argument("--duplicate-rate", type=float, default=0.15)
    generate_parser.add_argument("--organization-rate", type=float, default=0.2)
    generate_parser.add_argument("--seed", type=int, default=42)
    generate_parser.add_argument("--output", type=Path, default=Path("data/reference_entities.csv"))

    return parser


def _add_paging(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int, default=50)


def _parse_datetime(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an ISO-8601 date/time: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _print_progress(update: ProgressUpdate) -> None:
    print(f"[{update.stage.value}] {update.message} ({update.processed}/{update.total})", file=sys.stderr)


def _page_payload(page: Any) -> dict[str, Any]:
    return {
        "items": page.items,
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "hasNext": page.has_next,
        "hasPrev": page.has_prev,
    }


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _print_json(payload: object) -> None:
    print(json.dumps(_jsonable(payload), indent=2))


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(_jsonable(payload), handle, indent=2)


if __name__ == "__main__":
    raise SystemExit(main())
