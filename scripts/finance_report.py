#!/usr/bin/env python3
"""
Print a project's finance view as JSON.

Reads the grouped task costs of one project (or the subtasks of one parent
task, or the per-member breakdown of one task) from the database and
prints the response body the finance API returns.

Usage:
    python3 scripts/finance_report.py --project-id <uuid>
    python3 scripts/finance_report.py --project-id <uuid> --group-by priority --billable all
    python3 scripts/finance_report.py --project-id <uuid> --parent-task-id <uuid>
    python3 scripts/finance_report.py --task-id <uuid>
"""

import argparse
import json
import sys
from pathlib import Path
from uuid import UUID

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print a Worklenz project finance view as JSON.",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--project-id", type=UUID, help="Project to report")
    target.add_argument("--task-id", type=UUID, help="Task to break down by member")
    parser.add_argument("--parent-task-id", type=UUID, default=None,
                        help="List this task's subtasks instead of the top-level tasks")
    parser.add_argument("--group-by", choices=("status", "priority", "phases"), default=None)
    parser.add_argument("--billable", choices=("billable", "non-billable", "all"), default=None)
    parser.add_argument("--db-url", type=str, default=None,
                        help="Database URL (defaults to the configured database.url)")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings override file")
    parser.add_argument("--create-tables", action="store_true",
                        help="Create missing tables before reading (local databases)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from worklenz_config import get_active_config
    from worklenz_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from worklenz_kernel.exceptions import WorklenzError
    from worklenz_kernel.logging_config import configure_logging
    from worklenz_modules.finance.service import ProjectFinanceService

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)

    try:
        init_engine_from_url(
            args.db_url or config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
            pool_timeout=config.database.pool_timeout,
        )
        if args.create_tables:
            create_tables()
    except Exception as exc:
        print(f"  ERROR: Could not connect: {exc}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        service = ProjectFinanceService(session, settings=config.finance)
        if args.task_id is not None:
            report = service.get_task_cost_breakdown(args.task_id)
        elif args.parent_task_id is not None:
            report = service.get_subtask_costs(
                args.project_id, args.parent_task_id, billable_filter=args.billable,
            )
        else:
            report = service.get_project_task_costs(
                args.project_id, group_by=args.group_by, billable_filter=args.billable,
            )
    except WorklenzError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 2
    finally:
        session.close()

    json.dump(report.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
