"""One scraping pass: due sources -> adapters -> processor -> retention sweep."""

import logging
import threading
import time
from datetime import datetime, timezone

import config
from models import OrchestrationResult, Source
from processor import JobRecordProcessor
from robots import RobotsPolicyChecker
from sources import ADAPTERS, get_adapter_class
from sources.base import BaseSource
from store import JobStore

logger = logging.getLogger(__name__)


def is_due(now: datetime, last_scraped_at: datetime | None, frequency_hours: float) -> bool:
    """True when a source has never run or its interval has elapsed."""
    if last_scraped_at is None:
        return True
    if last_scraped_at.tzinfo is None:
        last_scraped_at = last_scraped_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    hours_since = (now - last_scraped_at).total_seconds() / 3600
    return hours_since >= frequency_hours


class ScrapingOrchestrator:
    def __init__(
        self,
        store: JobStore,
        processor: JobRecordProcessor | None = None,
        robots: RobotsPolicyChecker | None = None,
        adapters: dict[str, type[BaseSource]] | None = None,
    ):
        self.store = store
        self.processor = processor or JobRecordProcessor(store)
        self.robots = robots or RobotsPolicyChecker()
        self.adapters = dict(ADAPTERS if adapters is None else adapters)

    def run_pass(
        self,
        force_run: bool = False,
        source_ids: list[str] | None = None,
        now: datetime | None = None,
        cancel: threading.Event | None = None,
        time_budget_sec: float | None = None,
    ) -> OrchestrationResult:
        """Run every due source once. Never raises; failures are reported in the result."""
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)
        cancel = cancel or threading.Event()
        result = OrchestrationResult()

        timer = None
        if time_budget_sec is not None:
            timer = threading.Timer(time_budget_sec, cancel.set)
            timer.daemon = True
            timer.start()

        try:
            self._run_sources(result, force_run, source_ids, now, cancel)
            self._retention_sweep(result, now)
        finally:
            if timer is not None:
                timer.cancel()

        result.cancelled = cancel.is_set()
        result.execution_time_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Pass complete: {result.runs_executed} runs, {result.total_jobs_scraped} scraped, "
            f"{result.total_jobs_processed} processed, {len(result.errors)} errors "
            f"in {result.execution_time_ms}ms"
        )
        return result

    def _run_sources(
        self,
        result: OrchestrationResult,
        force_run: bool,
        source_ids: list[str] | None,
        now: datetime,
        cancel: threading.Event,
    ) -> None:
        try:
            sources = self.store.list_active_sources(source_ids or None)
        except Exception as e:
            logger.error(f"Failed to fetch sources: {e}")
            result.errors.append(f"Failed to fetch sources: {e}")
            return

        logger.info(f"Found {len(sources)} active sources to process")

        for source in sources:
            if cancel.is_set():
                logger.warning(f"Pass cancelled, skipping {source.name} and remaining sources")
                result.errors.append(f"Pass cancelled before {source.name}")
                break

            if not force_run and not is_due(now, source.last_scraped_at, source.scraping_frequency_hours):
                logger.info(f"Skipping {source.name}: scraped within the last {source.scraping_frequency_hours}h")
                continue

            self._run_source(result, source, force_run, cancel)

    def _run_source(
        self,
        result: OrchestrationResult,
        source: Source,
        force_run: bool,
        cancel: threading.Event,
    ) -> None:
        logger.info(f"Starting scraping run for {source.name} ({source.source_type})")
        try:
            run_id = self.store.create_run(source.id, "manual" if force_run else "scheduled")
        except Exception as e:
            logger.error(f"Failed to create run for {source.name}: {e}")
            result.errors.append(f"Failed to create run for {source.name}: {e}")
            return

        result.runs_executed += 1

        try:
            adapter_cls = get_adapter_class(source.source_type, self.adapters)
            adapter = adapter_cls(
                robots=self.robots,
                base_url=source.base_url or None,
                min_delay_ms=source.rate_limit_delay_ms,
            )
            scrape = adapter.scrape(
                source.search_keywords,
                location=source.search_location,
                max_pages=source.max_pages_per_run,
                respect_robots=True,
                cancel=cancel,
            )

            if scrape.robots_compliance is not None:
                result.robots_compliance_summary.append({
                    "source": source.name,
                    "compliance": scrape.robots_compliance.to_dict(),
                })

            self.store.update_run(
                run_id,
                jobs_found=scrape.total_found,
                pages_scraped=scrape.pages_scraped,
                scrape_errors=scrape.errors,
            )
            result.total_jobs_scraped += scrape.total_found
            logger.info(f"{source.name}: Found {scrape.total_found} jobs")

            processing = self.processor.process(scrape.listings, run_id, cancelled=scrape.cancelled)
            result.total_jobs_processed += processing.processed_count
            if processing.errors_count > 0:
                result.errors.append(f"{source.name} processing errors: {processing.errors_count}")
            result.sources_processed.append(source.name)

            if scrape.cancelled:
                # Left due so the next pass scrapes it in full
                logger.warning(f"{source.name}: scrape cut short by cancellation, not marking as scraped")
                result.errors.append(f"{source.name} scrape cancelled before completion")
                return

            self.store.update_source_last_scraped(source.id, datetime.now(timezone.utc))

        except Exception as e:
            logger.error(f"Error processing {source.name}: {e}", exc_info=True)
            result.errors.append(f"Error processing {source.name}: {e}")
            try:
                self.store.update_run(
                    run_id,
                    status="failed",
                    error_details={"error": str(e)},
                    completed_at=datetime.now(timezone.utc),
                )
            except Exception as update_error:
                logger.error(f"Failed to mark run {run_id} as failed: {update_error}")

    def _retention_sweep(self, result: OrchestrationResult, now: datetime) -> None:
        try:
            deactivated = self.store.deactivate_listings_older_than(config.LISTING_RETENTION_DAYS, now)
            logger.info(f"Deactivated {deactivated} listings older than {config.LISTING_RETENTION_DAYS} days")
        except Exception as e:
            logger.error(f"Failed to deactivate old listings: {e}")
            result.errors.append(f"Failed to deactivate old listings: {e}")

        try:
            deleted = self.store.delete_runs_older_than(config.RUN_RETENTION_DAYS, now)
            logger.info(f"Deleted {deleted} runs older than {config.RUN_RETENTION_DAYS} days")
        except Exception as e:
            logger.error(f"Failed to delete old runs: {e}")
            result.errors.append(f"Failed to delete old runs: {e}")
