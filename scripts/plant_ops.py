"""Command-line entry point for the plant operations engine.

Usage:
    python scripts/plant_ops.py init-db [--seed-reference]
    python scripts/plant_ops.py import exports/batches_2026-02-14.csv [--no-link]
    python scripts/plant_ops.py reconcile [--batch-id PB-...] [--force] [--limit 500]
    python scripts/plant_ops.py link PB-... BL-2026-0042 --by j.alami
    python scripts/plant_ops.py transition BL-2026-0042 delivered --user j.alami --role admin_agent

The database comes from PLANT_DB_PATH (or .env); --db overrides it.
"""

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from batch_matcher.importer import import_batches_csv
from batch_matcher.reconciler import BatchReconciler, summarize_scores
from core.config import get_settings
from core.errors import EngineError
from core.observability.logging import configure_logging
from lifecycle.controller import DeliveryLifecycleController
from models.delivery import Actor, DeliveryStatus, FormulaSpec, MaterialPrice, Role
from storage.batches import BatchStore
from storage.db import init_db
from storage.deliveries import DeliveryStore
from storage.reference import SqliteReferenceData, seed_reference_data


# Typical plant catalog, used to bootstrap an empty database
SAMPLE_FORMULAS = [
    FormulaSpec(formula_id="B20", cement_kg_m3=Decimal("300"), admixture_l_m3=Decimal("2.5"),
                sand_kg_m3=Decimal("800"), gravel_kg_m3=Decimal("1050"), water_l_m3=Decimal("180")),
    FormulaSpec(formula_id="B25", cement_kg_m3=Decimal("350"), admixture_l_m3=Decimal("3"),
                sand_kg_m3=Decimal("780"), gravel_kg_m3=Decimal("1020"), water_l_m3=Decimal("175")),
    FormulaSpec(formula_id="B30", cement_kg_m3=Decimal("400"), admixture_l_m3=Decimal("4"),
                sand_kg_m3=Decimal("750"), gravel_kg_m3=Decimal("1000"), water_l_m3=Decimal("170")),
]

SAMPLE_PRICES = [
    MaterialPrice(material="Ciment", unit_price=Decimal("1200")),
    MaterialPrice(material="Adjuvant", unit_price=Decimal("15")),
    MaterialPrice(material="Sable", unit_price=Decimal("120")),
    MaterialPrice(material="Gravier", unit_price=Decimal("140")),
    MaterialPrice(material="Eau", unit_price=Decimal("10")),
]


def cmd_init_db(args, db_path: Path) -> int:
    init_db(db_path)
    if args.seed_reference:
        seed_reference_data(SAMPLE_FORMULAS, SAMPLE_PRICES, db_path=db_path)
        print(f"Seeded {len(SAMPLE_FORMULAS)} formulas and {len(SAMPLE_PRICES)} prices")
    return 0


def cmd_import(args, db_path: Path) -> int:
    batches = BatchStore(db_path)
    reconciler = None if args.no_link else BatchReconciler(batches, DeliveryStore(db_path))

    path = Path(args.csv_file)
    report = import_batches_csv(
        path.read_text(encoding="utf-8-sig"),
        batches,
        reconciler=reconciler,
        source_file=path.name,
    )
    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 0 if report.failed == 0 else 1


def cmd_reconcile(args, db_path: Path) -> int:
    reconciler = BatchReconciler(BatchStore(db_path), DeliveryStore(db_path))

    if args.batch_id:
        result = reconciler.reconcile_batch(args.batch_id, force=args.force)
        print(f"{result.batch_id}: {result.status.value} → {result.note_id or '-'}")
        print(f"  {summarize_scores(result.scores)}")
        for c in result.candidates:
            print(f"  candidate {c.note_id}: {summarize_scores(c.scores)}")
        return 0

    summary = reconciler.reconcile_unlinked(limit=args.limit)
    print(
        f"{summary.run_id}: processed={summary.processed} auto_linked={summary.auto_linked} "
        f"pending={summary.pending} no_match={summary.no_match} skipped={summary.skipped}"
    )
    return 0


def cmd_link(args, db_path: Path) -> int:
    reconciler = BatchReconciler(BatchStore(db_path), DeliveryStore(db_path))
    result = reconciler.link_manually(args.batch_id, args.note_id, args.linked_by)
    print(f"{result.batch_id} manually linked to {result.note_id} ({summarize_scores(result.scores)})")
    return 0


def cmd_transition(args, db_path: Path) -> int:
    controller = DeliveryLifecycleController(DeliveryStore(db_path), SqliteReferenceData(db_path))
    result = controller.transition(
        args.note_id,
        args.target,
        Actor(user_id=args.user, role=args.role),
    )
    print(json.dumps(result.to_summary(), indent=2))
    for warning in result.warnings:
        print(f"WARNING: {warning}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plant operations engine")
    parser.add_argument("--db", help="SQLite database path (overrides PLANT_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create tables")
    p.add_argument("--seed-reference", action="store_true", help="Insert sample formulas and prices")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("import", help="Import a machine feed CSV")
    p.add_argument("csv_file")
    p.add_argument("--no-link", action="store_true", help="Do not reconcile imported batches")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("reconcile", help="Reconcile one batch or every unlinked batch")
    p.add_argument("--batch-id")
    p.add_argument("--force", action="store_true", help="Re-score linked batches")
    p.add_argument("--limit", type=int, default=500)
    p.set_defaults(func=cmd_reconcile)

    p = sub.add_parser("link", help="Link a batch to a delivery note by hand")
    p.add_argument("batch_id")
    p.add_argument("note_id")
    p.add_argument("--by", dest="linked_by", required=True)
    p.set_defaults(func=cmd_link)

    p = sub.add_parser("transition", help="Move a delivery note to another status")
    p.add_argument("note_id")
    p.add_argument("target", choices=[s.value for s in DeliveryStatus])
    p.add_argument("--user", required=True)
    p.add_argument("--role", required=True, choices=[r.value for r in Role])
    p.set_defaults(func=cmd_transition)

    return parser


def main(argv=None) -> int:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs, force=True)

    args = build_parser().parse_args(argv)
    db_path = Path(args.db) if args.db else settings.db_path

    try:
        return args.func(args, db_path)
    except EngineError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
