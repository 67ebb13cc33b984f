from __future__ import annotations

import logging

from alem import __version__
from alem.application.container import build_container
from alem.config import get_app_paths, load_settings
from alem.domain.quantities import format_money
from alem.logging_config import setup_logging

log = logging.getLogger(__name__)


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)
    settings = load_settings()

    with build_container(paths.db_path, settings) as app:
        log.info("app_started version=%s db=%s", __version__, paths.db_path)
        dash = app.reporting.dashboard()
        m = dash.metrics
        print(f"Alem POS {__version__}  ({paths.db_path})")
        print(f"  Sales:       {format_money(m.total_sales_cents, settings.currency)} in {m.transaction_count} transactions")
        print(f"  Profit:      {format_money(m.profit_cents, settings.currency)} ({m.margin_pct:.1f}% margin)")
        print(f"  Receivables: {format_money(m.receivables_cents, settings.currency)}")
        for alert in dash.alerts:
            print(f"  ! {alert.message}")


if __name__ == "__main__":
    main()
