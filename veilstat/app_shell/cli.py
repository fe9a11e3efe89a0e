import argparse
import logging
import sys
import time
from pathlib import Path

import yaml

from veilstat.adapters.alert_scheduler import AlertScheduler
from veilstat.adapters.clock import SystemClock
from veilstat.adapters.notifiers import LogNotifier, create_webhook_notifier
from veilstat.adapters.sqlite.migrator import DEFAULT_MIGRATIONS_DIR, SQLiteMigrator
from veilstat.adapters.sqlite_db import SQLiteAlertStateRepo, SQLiteDatabase, SQLiteEventRepo
from veilstat.components.alerts import Alert, ChannelKind, create_alert_runner
from veilstat.components.query import create_query_engine
from veilstat.core.errors import ValidationError
from veilstat.rules.loader import load_rules
from veilstat.rules.models import Rules

logger = logging.getLogger("veilstat.cli")

DB_PATH = "data/veilstat.db"
RULES_PATH = "rules.yaml"
ALERTS_PATH = "alerts.yaml"


def get_rules(path: str) -> Rules:
    try:
        return load_rules(Path(path))
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(1)


def load_alerts(path: str) -> list[Alert]:
    """Read alert definitions (a YAML list of camelCase objects)."""
    with open(path) as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("alerts", [])

    alerts = []
    for index, raw in enumerate(data):
        try:
            alerts.append(Alert.from_dict(raw))
        except ValidationError as e:
            logger.error("Skipping alert %d in %s: %s", index, path, e.message)
    return alerts


def handle_migrate(args: argparse.Namespace) -> None:
    applied = SQLiteMigrator(args.db, args.migrations).run_migrations()
    print(f"Applied {len(applied)} migrations.")


def handle_run_alerts(args: argparse.Namespace) -> None:
    if not Path(args.alerts).exists():
        logger.error("Alerts file %s not found.", args.alerts)
        sys.exit(1)

    rules = get_rules(args.rules)
    clock = SystemClock()
    db = SQLiteDatabase(args.db)
    engine = create_query_engine(SQLiteEventRepo(db), clock, rules)
    notifiers = {
        ChannelKind.LOG: LogNotifier(),
        ChannelKind.WEBHOOK: create_webhook_notifier(
            max_attempts=rules.alerts.webhook_max_attempts,
            timeout_seconds=rules.alerts.webhook_timeout_seconds,
        ),
    }
    runner = create_alert_runner(engine, SQLiteAlertStateRepo(db), clock, notifiers, rules)
    scheduler = AlertScheduler(
        runner,
        lambda: load_alerts(args.alerts),
        poll_interval_seconds=rules.alerts.poll_interval_seconds,
    )

    if args.once:
        fired = scheduler.trigger_now()
        print(f"Triggered {len(fired)} alerts.")
        return

    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="veilstat CLI")
    parser.add_argument("--db", default=DB_PATH, help="Path to the sqlite database")
    parser.add_argument("--rules", default=RULES_PATH, help="Path to rules.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Apply pending migrations")
    migrate_parser.add_argument("--migrations", default=DEFAULT_MIGRATIONS_DIR)

    # run-alerts
    alerts_parser = subparsers.add_parser("run-alerts", help="Evaluate alerts on a schedule")
    alerts_parser.add_argument("--alerts", default=ALERTS_PATH, help="YAML file of alert definitions")
    alerts_parser.add_argument("--once", action="store_true", help="Run a single tick and exit")

    args = parser.parse_args()

    if args.command == "migrate":
        handle_migrate(args)
    elif args.command == "run-alerts":
        handle_run_alerts(args)


if __name__ == "__main__":
    main()
