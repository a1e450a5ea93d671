#!/usr/bin/env python3
# python -m pinnacle_sales_bot [--mode=production|test] [--blockheight=N] [--dry-run] [--threshold=USD] [--port=N]

import argparse
import sys
from dataclasses import replace
from typing import List, Optional

from .app import create_app, serve_in_background
from .config import Settings
from .flow import FlowClient, TransactionFetcher
from .gate import GateConfig, SaleEventGate
from .logs import AuditLog, log, set_debug
from .metadata import EDITION_SCRIPT, PIN_SCRIPT, PRICE_SCRIPT, PinnacleMetadata, load_script, missing_scripts
from .monitor import Monitor
from .pricing import CoinGeckoOracle, OnChainFlowOracle, PriceConverter
from .processor import SaleProcessor
from .retry import RetryPolicy
from .twitter import TwitterNotifier


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="pinnacle_sales_bot", add_help=True)
    p.add_argument("--mode", choices=("production", "test"), default="production")
    p.add_argument("--blockheight", type=int, default=None,
                   help="test mode: block to replay; production: first block to scan")
    p.add_argument("--dry-run", action="store_true", help="log tweets instead of posting, ignore threshold")
    p.add_argument("--threshold", type=float, default=None, help="minimum USD price to post")
    p.add_argument("--port", type=int, default=None, help="status server port (0 disables)")
    return p.parse_args(argv)


def build_oracle(settings: Settings, client: FlowClient):
    if settings.price_oracle == "onchain":
        return OnChainFlowOracle(client, load_script(settings.cadence_dir, PRICE_SCRIPT), settings.oracle_address)
    return CoinGeckoOracle()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    test_mode = args.mode == "test"
    dry_run = args.dry_run or test_mode

    settings = Settings.from_env(require_secrets=not dry_run)
    if args.threshold is not None:
        settings = replace(settings, threshold_usd=args.threshold)
    if args.port is not None:
        settings = replace(settings, port=args.port)
    set_debug(settings.debug_log_all_events)

    if test_mode and not args.blockheight:
        log("Block height is required in test mode. Use --blockheight=<number>", "ERROR")
        return 2

    needed = [PIN_SCRIPT, EDITION_SCRIPT] + ([PRICE_SCRIPT] if settings.price_oracle == "onchain" else [])
    missing = missing_scripts(settings.cadence_dir, needed)
    if missing:
        log(f"Missing Cadence scripts in {settings.cadence_dir}: {', '.join(missing)}", "ERROR")
        return 1

    client = FlowClient(settings.flow_rest_endpoint)
    notifier = None
    if not dry_run and settings.enable_tweets:
        missing = settings.missing_secrets()
        if missing:
            log(f"Missing required environment variables: {', '.join(missing)}", "ERROR")
            return 1
        notifier = TwitterNotifier(settings.twitter_api_key, settings.twitter_api_secret,
                                   settings.access_token, settings.access_secret, settings.out_dir)
        if not notifier.verify_credentials():
            log("Failed to initialize Twitter client. Please check your environment.", "ERROR")
            return 1

    cfg = GateConfig(tracked_type=settings.tracked_type, threshold_usd=settings.threshold_usd, dry_run=dry_run)
    converter = PriceConverter(build_oracle(settings, client), ttl=settings.price_ttl_secs)
    fetcher = TransactionFetcher(
        client, RetryPolicy.exponential(settings.tx_fetch_attempts, settings.tx_fetch_backoff_secs))
    processor = SaleProcessor(
        gate=SaleEventGate(converter),
        fetcher=fetcher,
        metadata=PinnacleMetadata(client, settings.cadence_dir),
        notifier=notifier,
        cfg=cfg,
        audit=AuditLog(settings.out_dir),
        enable_tweets=settings.enable_tweets,
    )
    monitor = Monitor(client, processor, settings.listing_event_types, settings.poll_interval_secs)

    log("=== Pinnacle NFT Event Monitor ===")
    log(f"Flow REST: {settings.flow_rest_endpoint}")
    log(f"Tracking {cfg.tracked_type} at >= ${cfg.threshold_usd:g}{' (dry run)' if dry_run else ''}")

    if test_mode:
        monitor.replay_block(args.blockheight)
        log("=== Test Block Processing Complete ===")
        return 0

    app = create_app(processor.state, cfg.threshold_usd, cfg.tracked_type, lambda: not monitor.stop.is_set())
    serve_in_background(app, settings.port)
    monitor.install_signal_handlers()
    monitor.run(start_height=args.blockheight)
    return 0


if __name__ == "__main__":
    sys.exit(main())
