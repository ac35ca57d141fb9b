#!/usr/bin/env python3
"""
Main entry point for the sitegraph crawler.
"""

import asyncio
import argparse
import dataclasses
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from sitegraph import __version__
from sitegraph.broadcast import ProgressBroadcaster
from sitegraph.crawler.fetcher import WebFetcher
from sitegraph.crawler.orchestrator import CrawlRunError
from sitegraph.pipeline import ScrapePipeline
from sitegraph.storage.database import DatabaseError, DatabaseManager
from sitegraph.storage.exports import (
    ExportGenerator, ExportNotReadyError, MemoryExportStore, RedisExportStore
)
from sitegraph.storage.models import ExportFormat, ExportRequest
from sitegraph.utils.config import Config, load_config, validate_crawler_config
from sitegraph.utils.logger import setup_logging
from sitegraph.utils.monitoring import CrawlerMonitor, MetricsCollector


def apply_overrides(config: Config, url: Optional[str] = None, max_depth: Optional[int] = None,
                    max_workers: Optional[int] = None, delay: Optional[int] = None) -> Config:
    """Return a copy of config with command line values applied to the crawler section."""
    overrides = {
        'target_url': url,
        'max_depth': max_depth,
        'max_workers': max_workers,
        'delay_ms': delay,
    }
    crawler = dataclasses.replace(
        config.crawler, **{k: v for k, v in overrides.items() if v is not None}
    )
    validate_crawler_config(crawler)
    return dataclasses.replace(config, crawler=crawler)


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.pipeline: Optional[ScrapePipeline] = None
        self.database: Optional[DatabaseManager] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, stopping after the current batch...")
            if self.pipeline:
                self.pipeline.cancel()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def run(self, config: Config, dry_run: bool = False,
                  export_format: Optional[str] = None, output: Optional[str] = None) -> int:
        """Run one crawl project and optionally export it."""
        setup_logging(config.logging)
        self.setup_signal_handlers()

        self.logger.info("=== SITEGRAPH STARTING ===")
        self.logger.info(f"Target URL: {config.crawler.target_url}")
        self.logger.info(f"Max depth: {config.crawler.max_depth}")
        self.logger.info(f"Max workers: {config.crawler.max_workers}")
        self.logger.info(f"Delay: {config.crawler.delay_ms}ms")
        self.logger.info(f"Database type: {config.database.type}")

        if dry_run:
            self.logger.info("DRY RUN MODE: No actual crawling will be performed")
            return await self._dry_run(config)

        collector = MetricsCollector(
            enable_http=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        )
        await collector.start_prometheus_server()
        monitor = CrawlerMonitor(collector)

        self.database = DatabaseManager(config.database, config.redis)
        try:
            await self.database.initialize()
            self.pipeline = ScrapePipeline(
                self.database.backend,
                broadcaster=ProgressBroadcaster(),
                monitor=monitor,
            )
            project = await self.pipeline.start(config.crawler)

            stats = await self.database.backend.get_project_stats(project.id)
            self.logger.info(
                f"Project {project.id}: {stats.total_documents} documents, "
                f"{stats.total_entities} entities, {stats.total_relationships} relationships"
            )

            if export_format:
                await self._export(config, project.id, export_format, output)

        except (CrawlRunError, DatabaseError, ExportNotReadyError) as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            await self.database.close()
            self.logger.info(f"Metrics: {monitor.get_summary()}")
            self.logger.info("=== SITEGRAPH FINISHED ===")

        return 0

    async def _export(self, config: Config, project_id: str, export_format: str,
                      output: Optional[str]):
        if config.database.type == 'redis':
            store = RedisExportStore(
                self.database.redis_client, config.redis.key_prefix, config.database.export_ttl
            )
        else:
            store = MemoryExportStore()

        generator = ExportGenerator(self.database.backend, store)
        record = await generator.generate(project_id, ExportRequest(format=ExportFormat(export_format)))
        file_name, content = await generator.download(record.id)

        path = Path(output or file_name)
        path.write_text(content, encoding='utf-8')
        self.logger.info(f"Export written to {path} ({record.file_size} bytes)")

    async def _dry_run(self, config: Config) -> int:
        """Test configuration and connections without crawling."""
        self.logger.info("Testing database configuration...")
        database = DatabaseManager(config.database, config.redis)
        try:
            await database.initialize()
            self.logger.info("Database initialization successful")
        except DatabaseError as e:
            self.logger.error(f"Database initialization failed: {e}")
            return 1
        finally:
            await database.close()

        self.logger.info("Testing fetcher configuration...")
        async with WebFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.request_timeout,
            max_concurrent_requests=1
        ) as fetcher:
            result = await fetcher.fetch(config.crawler.target_url)
            if result.error:
                self.logger.warning(f"Test fetch failed: {result.error}")
            else:
                self.logger.info(f"Test fetch successful: {result.status_code}")

        self.logger.info("Dry run completed")
        return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl one site into a document and entity graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # Run with default config.yaml
  python main.py --config my_config.yaml          # Run with custom config
  python main.py --url https://example.com        # Override the target URL
  python main.py --max-depth 2 --max-workers 5    # Smaller crawl
  python main.py --export json --output out.json  # Export after the crawl
  python main.py --dry-run                        # Test configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument('--url', help='Site root to crawl')

    parser.add_argument(
        '--max-depth',
        type=int,
        help='Maximum link depth (1-5)'
    )

    parser.add_argument(
        '--max-workers',
        type=int,
        help='Concurrent fetches per batch (1-50)'
    )

    parser.add_argument(
        '--delay',
        type=int,
        help='Delay before each fetch in milliseconds (0-10000)'
    )

    parser.add_argument(
        '--export',
        choices=[fmt.value for fmt in ExportFormat],
        help='Export the project after the crawl'
    )

    parser.add_argument('--output', help='Export file path (default: generated file name)')

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Test configuration without actually crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'sitegraph {__version__}'
    )
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    try:
        config = apply_overrides(
            load_config(args.config),
            url=args.url,
            max_depth=args.max_depth,
            max_workers=args.max_workers,
            delay=args.delay
        )
    except ValueError as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    if not config.crawler.target_url:
        print("Error: no target URL; set crawler.target_url or pass --url")
        return 1

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            config,
            dry_run=args.dry_run,
            export_format=args.export,
            output=args.output
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
