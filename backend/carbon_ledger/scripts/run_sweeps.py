"""Run ledger sweeps once, for external schedulers (cron, k8s CronJob).

Run with: python -m carbon_ledger.scripts.run_sweeps --pass all
"""

from __future__ import annotations

import argparse
import json
import logging

from carbon_ledger.services.scheduler import SWEEPS, run_locked

ORDER = ("expire", "warn", "statements")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Claim lifecycle sweeps: expire, warn, statements.")
    parser.add_argument(
        "--pass",
        dest="sweep",
        choices=[*ORDER, "all"],
        default="all",
        help="Which sweep to run (default: all, in order expire, warn, statements).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )

    names = ORDER if args.sweep == "all" else (args.sweep,)
    report: dict[str, object] = {}
    failed = False
    for name in names:
        lock_key, job = SWEEPS[name]
        res = run_locked(name, lock_key, job)
        if res is None:
            report[name] = "skipped_locked"
            continue
        report[name] = res.as_dict()
        failed = failed or res.failed > 0

    print(json.dumps(report, ensure_ascii=False, indent=2, default=str))
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
