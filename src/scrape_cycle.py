"""
Scrape Cycle - one full pass over every configured keyword.

scan -> age filter -> relevance filter -> dedup -> apply link -> save.
The cycle knows nothing about intervals; the scheduler calls run().
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from ai_filter import RelevanceFilter
from apply_link import ApplyLinkResolver
from collector import JobCollector, ScanError
from job_store import JobStore
from models import ScrapedPosting, ScraperState
from run_metrics import RunMetrics
from scraper_state import ScraperStateStore
from stealth_browser import StealthBrowser

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED_RUNNING = "skipped_running"
    SKIPPED_PAUSED = "skipped_paused"


def pause_ends_at(state: ScraperState, max_errors: int, pause_minutes: float) -> Optional[datetime]:
    """End of the auto-pause window, or None when the error threshold is not reached."""
    if state.error_count < max_errors:
        return None
    return state.last_run_at + timedelta(minutes=pause_minutes)


class ScrapeCycle:
    """Runs the scrape pipeline once, guarded by the shared scraper state"""

    def __init__(
        self,
        config,
        state: ScraperStateStore,
        job_store: JobStore,
        relevance_filter: Optional[RelevanceFilter] = None,
        browser_factory: Callable = StealthBrowser,
        collector_factory: Callable = JobCollector,
        resolver_factory: Callable = ApplyLinkResolver,
    ):
        self.config = config
        self.state = state
        self.job_store = job_store
        self.relevance_filter = relevance_filter or RelevanceFilter(config)
        self.browser_factory = browser_factory
        self.collector_factory = collector_factory
        self.resolver_factory = resolver_factory
        self.last_metrics: Optional[RunMetrics] = None

    def run(self) -> CycleOutcome:
        state = self.state.get()
        if state.is_running:
            logger.info("Previous scrape cycle still running, skipping")
            return CycleOutcome.SKIPPED_RUNNING

        now = datetime.now()
        resume_at = pause_ends_at(
            state,
            self.config.get_max_consecutive_errors(),
            self.config.get_error_pause_minutes(),
        )
        if resume_at is not None and now < resume_at:
            logger.warning(
                "Scraper paused after %s consecutive errors. Resuming after %s",
                state.error_count, resume_at.isoformat(timespec="seconds"),
            )
            return CycleOutcome.SKIPPED_PAUSED

        if not self.state.try_mark_running(now):
            logger.info("Another scrape cycle claimed the run, skipping")
            return CycleOutcome.SKIPPED_RUNNING

        metrics = RunMetrics()
        self.last_metrics = metrics
        logger.info("Starting scrape cycle %s", metrics.cycle_id)

        browser = None
        succeeded = False
        try:
            browser = self.browser_factory(self.config)
            browser.launch()
            self._scan_keywords(browser, metrics)
            succeeded = True
        except Exception:
            logger.exception("Scrape cycle %s failed", metrics.cycle_id)
            metrics.record_event("cycle_failed")
        finally:
            if browser is not None:
                browser.close()
            if succeeded:
                self.state.mark_success()
            else:
                error_count = self.state.mark_error()
                max_errors = self.config.get_max_consecutive_errors()
                if error_count >= max_errors:
                    logger.error(
                        "Max consecutive errors (%s) reached. Pausing for %s minutes.",
                        max_errors, self.config.get_error_pause_minutes(),
                    )
            metrics.finish()
            logger.info(
                "Scrape cycle %s %s in %.1fs: %s",
                metrics.cycle_id,
                "complete" if succeeded else "failed",
                metrics.duration_seconds or 0.0,
                metrics.summary(),
            )
            logger.debug("Cycle metrics: %s", metrics.to_dict())

        return CycleOutcome.SUCCESS if succeeded else CycleOutcome.FAILED

    def _scan_keywords(self, browser, metrics: RunMetrics) -> None:
        collector = self.collector_factory(self.config, browser)
        resolver = self.resolver_factory(self.config, browser)
        profile_summary = self.config.get_profile_summary()
        rules = self.config.get_preference_rules()

        for keyword in self.config.get_keywords():
            try:
                postings = collector.scan_all_cards(keyword)
            except ScanError as exc:
                logger.error("Keyword '%s' aborted: %s", keyword, exc)
                metrics.inc("keywords_failed")
                metrics.record_event("keyword_failed", keyword=keyword, error=str(exc))
                continue
            self._process_postings(keyword, postings, profile_summary, rules, resolver, metrics)

    def _process_postings(self, keyword: str, postings: List[ScrapedPosting], profile_summary: str,
                          rules, resolver, metrics: RunMetrics) -> None:
        max_minutes_ago = self.config.get_max_minutes_ago()
        metrics.inc("scanned", len(postings))

        recent = [p for p in postings if p.minutes_ago <= max_minutes_ago]
        metrics.inc("after_time_filter", len(recent))
        logger.info(
            "'%s': %s cards, %s posted within %s minutes",
            keyword, len(postings), len(recent), max_minutes_ago,
        )
        if not recent:
            return

        relevant_ids = self.relevance_filter.filter_relevant(profile_summary, recent, rules)
        relevant = _unique_by_id(p for p in recent if p.site_id in relevant_ids)
        metrics.inc("after_ai_filter", len(relevant))
        if not relevant:
            logger.info("'%s': no relevant jobs after filtering", keyword)
            return

        existing = self.job_store.existing_ids([p.site_id for p in relevant])
        new_postings = [p for p in relevant if p.site_id not in existing]
        metrics.inc("new", len(new_postings))
        logger.info("'%s': %s relevant, %s new", keyword, len(relevant), len(new_postings))

        for posting in new_postings:
            apply_link = resolver.resolve(posting)
            record = posting.model_copy(update={"apply_link": apply_link or None})
            try:
                if self.job_store.save(record):
                    metrics.inc("saved")
                    logger.info("Saved: %s", record)
            except Exception as exc:
                metrics.inc("save_failed")
                logger.error("Failed to save job %s (%s): %s", record.site_id, record.title, exc)


def _unique_by_id(postings) -> List[ScrapedPosting]:
    seen = set()
    unique: List[ScrapedPosting] = []
    for posting in postings:
        if posting.site_id in seen:
            continue
        seen.add(posting.site_id)
        unique.append(posting)
    return unique
