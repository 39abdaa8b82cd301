"""
Command-line entry point for the signal engine.

Replays a file of raw signal payloads through a fully wired pipeline with a
static market context and prints one JSON result per signal.

Usage:
    python -m signal_engine replay signals.jsonl --vix 18 --trend BULLISH
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from signal_engine.bootstrap import build_engine
from signal_engine.config.loader import ConfigLoader, get_config_summary
from signal_engine.core.errors import ConfigValidationError
from signal_engine.core.models import ContextData, Direction, GEXSignal, Regime, Trend
from signal_engine.market_data.gex_service import InMemoryGEXReader
from signal_engine.market_data.providers import StaticContextProvider, StaticQuoteProvider
from signal_engine.utils.logger import setup_logging
from signal_engine.utils.time_utils import TimeUtils

logger = logging.getLogger(__name__)


def read_payloads(path: Path) -> List[Any]:
    """Read a JSON array, a single JSON object, or JSON Lines."""
    text = path.read_text()
    stripped = text.strip()
    if not stripped:
        return []
    if stripped[0] in "[{":
        try:
            data = json.loads(stripped)
            return data if isinstance(data, list) else [data]
        except ValueError:
            pass
    # JSON Lines; malformed lines are passed through so the pipeline rejects them
    return [line for line in (raw.strip() for raw in text.splitlines()) if line]


def read_gex_readings(path: Path) -> List[GEXSignal]:
    readings = []
    for item in json.loads(path.read_text()):
        timestamp = TimeUtils.parse_timestamp(item.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Invalid GEX timestamp: {item.get('timestamp')!r}")
        readings.append(GEXSignal(
            symbol=str(item["symbol"]).upper(),
            timeframe=str(item["timeframe"]),
            strength=float(item["strength"]),
            direction=Direction(str(item["direction"]).upper()),
            timestamp=timestamp,
        ))
    return readings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="signal-engine", description="Options signal decision engine")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory holding engine.yaml")
    parser.add_argument("--environment", default=None, help="development, staging or production")
    parser.add_argument("--log-level", default=None, help="Overrides system.log_level")
    parser.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON log records")

    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Run signal payloads from a file through the pipeline")
    replay.add_argument("file", type=Path, help="JSON array, JSON object or JSON Lines file")
    replay.add_argument("--vix", type=float, default=18.0)
    replay.add_argument("--trend", choices=[t.value for t in Trend], default=Trend.NEUTRAL.value)
    replay.add_argument("--bias", type=float, default=0.0)
    replay.add_argument("--regime", choices=[r.value for r in Regime], default=Regime.NORMAL.value)
    replay.add_argument("--price", type=float, default=None, help="Fallback quote for every symbol")
    replay.add_argument("--gex", type=Path, default=None, help="JSON array of GEX readings")
    replay.add_argument("--evaluate-exits", action="store_true", help="Run one exit pass afterwards")

    sub.add_parser("show-config", help="Print the resolved configuration")
    return parser


async def run_replay(args: argparse.Namespace, config) -> int:
    context = ContextData(
        vix=args.vix,
        trend=Trend(args.trend),
        bias=args.bias,
        regime=Regime(args.regime),
        timestamp=TimeUtils.now_utc(),
    )
    gex_reader = InMemoryGEXReader(read_gex_readings(args.gex) if args.gex else None)

    quote_providers = None
    if args.price is not None:
        quote_providers = [_FixedPriceProvider(args.price)]

    engine = build_engine(
        config,
        StaticContextProvider(context),
        gex_reader,
        quote_providers=quote_providers,
    )

    for payload in read_payloads(args.file):
        result = await engine.pipeline.process_signal(payload)
        print(json.dumps(result.to_dict(), default=str))

    if args.evaluate_exits:
        for exit_result in await engine.pipeline.process_exits():
            print(json.dumps({
                "exit": exit_result.decision.to_dict(),
                "closed": exit_result.closed,
                "realized_pnl": exit_result.realized_pnl,
                "error": exit_result.error,
            }, default=str))

    logger.info(f"Replay finished: {engine.pipeline.get_pipeline_status()}")
    return 0


class _FixedPriceProvider(StaticQuoteProvider):
    """Quotes the same price for any symbol."""

    def __init__(self, price: float):
        super().__init__({}, name="fixed")
        self.price = price

    async def get_quote(self, symbol: str) -> float:
        return self.price


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = ConfigLoader(args.config_dir).load_app_config(args.environment)
    except ConfigValidationError as e:
        print("Configuration invalid:", file=sys.stderr)
        for error in e.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=args.log_level or config.system.log_level.value,
        json_format=config.system.json_logs if args.json_logs is None else args.json_logs,
    )
    logger.info(f"Starting signal engine: {get_config_summary(config)}")

    if args.command == "show-config":
        print(json.dumps(config.model_dump(mode="json"), indent=2))
        return 0

    return asyncio.run(run_replay(args, config))


if __name__ == "__main__":
    sys.exit(main())
