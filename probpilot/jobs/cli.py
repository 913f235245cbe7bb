from __future__ import annotations

import argparse
import json
import logging
import sys

import dotenv

from calibration.errors import InvalidInput
from probpilot.core.config import load_config
from probpilot.jobs.common import load_payload
from probpilot.jobs.forecast import run_assistant, run_forecast
from probpilot.jobs.history import run_history


def main(argv: list[str] | None = None) -> int:
    dotenv.load_dotenv()
    parser = argparse.ArgumentParser(description="ProbPilot evidence-weighted forecast calibration")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_forecast = sub.add_parser("forecast", help="deterministic log-odds forecast")
    p_forecast.add_argument("--config", default="probpilot.toml")
    p_forecast.add_argument("--input", required=True, help="request JSON file, or - for stdin")
    p_forecast.add_argument("--save", action="store_true")

    p_assistant = sub.add_parser("assistant_forecast", help="guarded assistant forecast")
    p_assistant.add_argument("--config", default="probpilot.toml")
    p_assistant.add_argument("--input", required=True, help="request JSON file, or - for stdin")
    p_assistant.add_argument("--dry-run", action="store_true")
    p_assistant.add_argument("--live", action="store_true")
    p_assistant.add_argument("--save", action="store_true")

    p_history = sub.add_parser("history", help="recorded forecast runs")
    p_history.add_argument("--config", default="probpilot.toml")
    p_history.add_argument("--market-id", default=None)
    p_history.add_argument("--limit", type=int, default=50)

    args = parser.parse_args(argv)
    cfg = args.config
    logging.basicConfig(
        level=getattr(logging, load_config(cfg).log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        if args.cmd == "forecast":
            result = run_forecast(load_payload(args.input), config_path=cfg, save=args.save)
            print(json.dumps(result, indent=2))
        elif args.cmd == "assistant_forecast":
            dry = True if args.dry_run else False if args.live else None
            result = run_assistant(load_payload(args.input), config_path=cfg, dry_run=dry, save=args.save)
            print(json.dumps(result, indent=2))
        elif args.cmd == "history":
            print(run_history(config_path=cfg, market_id=args.market_id, limit=args.limit))
    except InvalidInput as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
