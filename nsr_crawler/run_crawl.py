"""Crawl runner: worker pool over the task frontier, plus the CLI entry point.

Example::

    python -m nsr_crawler.run_crawl --state johor --state melaka --concurrency 4
"""

from __future__ import annotations

import argparse
import asyncio
import json
import uuid
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Optional, Sequence

import httpx
import structlog
from pymongo import MongoClient

from observability.logging import configure_logging
from settings import CrawlerSettings, Settings, get_settings

from .errors import BotDetectionError, CrawlError, FetchError
from .fetcher import HttpFetcher
from .frontier import Frontier
from .models import CrawlTask, EntityTarget, TaskKind
from .reporting import CrawlerProgress, Reporter
from .sink import MemorySink, MongoSink, RecordGate, RecordSink, validate_export
from .targets import targets_for

logger = structlog.get_logger(__name__)


@dataclass
class RunReport:
    """Counters collected over one crawl run."""

    tasks: Counter[TaskKind] = field(default_factory=Counter)
    fetched: int = 0
    failed: int = 0
    failures: dict[str, int] = field(default_factory=dict)
    last_page: dict[str, int] = field(default_factory=dict)
    records_emitted: int = 0
    records_dropped: int = 0
    records_overwritten: int = 0
    ceiling_hit: bool = False

    def record_failure(self, task: CrawlTask) -> None:
        self.failed += 1
        self.failures[task.target.key] = self.failures.get(task.target.key, 0) + 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "tasks": {str(kind): count for kind, count in self.tasks.items()},
            "fetched": self.fetched,
            "failed": self.failed,
            "failures": dict(self.failures),
            "last_page": dict(self.last_page),
            "records_emitted": self.records_emitted,
            "records_dropped": self.records_dropped,
            "records_overwritten": self.records_overwritten,
            "ceiling_hit": self.ceiling_hit,
        }


async def crawl(
    targets: Iterable[EntityTarget],
    *,
    settings: CrawlerSettings | None = None,
    sink: RecordSink | None = None,
    client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    seed_urls: Sequence[str] = (),
    progress: Reporter | None = None,
    job_id: str | None = None,
) -> RunReport:
    """Crawl every target (and seed URL) to completion.

    ``settings.concurrency`` workers share one HTTP client and one frontier.
    The run ends once the queue drains; failed tasks are counted per target
    and never abort the run.  Sink writes and progress updates are blocking
    calls and run in worker threads.  Accepts an optional ``client_factory`` so tests
    can inject an ``httpx.AsyncClient`` backed by ``MockTransport``.
    """

    settings = settings or get_settings().crawler
    sink = sink if sink is not None else MemorySink()
    frontier = Frontier(settings)
    gate = RecordGate(sink)
    report = RunReport()
    state = CrawlerProgress(job_id=job_id or uuid.uuid4().hex)
    queue: asyncio.Queue[CrawlTask] = asyncio.Queue()

    async def publish(*, done: bool = False) -> None:
        if progress is None:
            return
        state.fetched = report.fetched
        state.failed = report.failed
        state.records = gate.emitted
        state.dropped = gate.dropped
        state.done = done
        await asyncio.to_thread(progress.update, replace(state))

    async def enqueue(task: CrawlTask) -> None:
        if await frontier.offer(task):
            state.queued += 1
            await queue.put(task)

    async def _process(fetcher: HttpFetcher, task: CrawlTask) -> None:
        try:
            result = await fetcher.fetch(task)
        except BotDetectionError as exc:
            report.record_failure(task)
            logger.error(
                "task_blocked",
                kind=str(task.kind),
                url=task.url,
                method=task.method,
                target=task.target.key,
                status=exc.status,
            )
            return
        except FetchError as exc:
            report.record_failure(task)
            logger.warning("task_failed", kind=str(task.kind), url=task.url, target=task.target.key, error=str(exc))
            return

        report.fetched += 1
        state.last_url = result.url
        if task.kind is TaskKind.LISTING:
            report.last_page[task.target.key] = max(report.last_page.get(task.target.key, 0), task.page)

        try:
            outcome = frontier.advance(task, result.html, result.url)
        except CrawlError as exc:
            report.record_failure(task)
            logger.warning("task_unparsed", kind=str(task.kind), url=result.url, error=str(exc))
            return

        for record in outcome.records:
            await asyncio.to_thread(gate.emit, record)
        for follow_up in outcome.tasks:
            await enqueue(follow_up)
        await publish()

    async def _worker(fetcher: HttpFetcher) -> None:
        while True:
            task = await queue.get()
            try:
                await _process(fetcher, task)
            except Exception:
                report.record_failure(task)
                logger.exception("task_crashed", kind=str(task.kind), url=task.url)
            finally:
                queue.task_done()

    fetcher = HttpFetcher(
        user_agent=settings.user_agent,
        referer=settings.search_url,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_backoff=settings.retry_backoff,
        domain_delay=settings.domain_delay,
        client_factory=client_factory,
    )

    async with fetcher:
        for target in targets:
            await enqueue(frontier.initial_task(target))
        for url in seed_urls:
            await enqueue(frontier.seed_task(url))
        logger.info("crawl_started", job_id=state.job_id, queued=queue.qsize(), concurrency=settings.concurrency)

        workers = [asyncio.create_task(_worker(fetcher)) for _ in range(settings.concurrency)]
        try:
            await queue.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    report.tasks = Counter(frontier.accepted)
    report.records_emitted = gate.emitted
    report.records_dropped = gate.dropped
    report.records_overwritten = gate.overwritten
    report.ceiling_hit = frontier.saturated
    await publish(done=True)
    logger.info("crawl_finished", job_id=state.job_id, **report.as_dict())
    return report


def run(
    settings: Settings | None = None,
    *,
    job_id: str | None = None,
    dump_path: str | None = None,
) -> RunReport:
    """Synchronous entry point: build sink and reporter from settings and crawl."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)
    crawler = settings.crawler

    mongo_client: MongoClient | None = None
    sink: RecordSink
    if settings.mongo.uri:
        mongo_client = MongoClient(settings.mongo.uri)
        collection = mongo_client[settings.mongo.database][settings.mongo.collection]
        sink = MongoSink(collection, batch_size=settings.mongo.batch_size)
    else:
        sink = MemorySink()
    progress = Reporter(url=settings.redis_url) if settings.redis_url else None

    if crawler.start_urls and not crawler.states:
        targets: list[EntityTarget] = []
    else:
        targets = targets_for(crawler.states)

    try:
        report = asyncio.run(
            crawl(
                targets,
                settings=crawler,
                sink=sink,
                seed_urls=crawler.start_urls,
                progress=progress,
                job_id=job_id,
            )
        )
        sink.flush()
        check = validate_export(sink, report.records_emitted - report.records_overwritten)
        log = logger.info if check["within_threshold"] else logger.warning
        log("export_checked", **check)
        if dump_path:
            with open(dump_path, "w", encoding="utf-8") as fh:
                json.dump(sink.get_all(), fh, ensure_ascii=False, indent=2, default=str)
            logger.info("records_dumped", path=dump_path)
    finally:
        if mongo_client is not None:
            mongo_client.close()
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl the National Specialist Register")
    parser.add_argument("--state", action="append", dest="states", help="state name, alias or id (repeatable)")
    parser.add_argument("--start-url", action="append", dest="start_urls", help="explicit listing URL (repeatable)")
    parser.add_argument("--concurrency", type=int, help="number of concurrent workers")
    parser.add_argument("--max-tasks", type=int, help="stop admitting tasks after this many (0 = no limit)")
    parser.add_argument("--delay", type=float, help="seconds between requests to the same host")
    parser.add_argument("--no-form", action="store_true", help="skip the search form and GET listings directly")
    parser.add_argument("--no-paginate", action="store_true", help="fetch only the first listing page")
    parser.add_argument("--mongo-uri", help="MongoDB URI; records stay in memory without one")
    parser.add_argument("--dump", help="write the collected records as JSON to this path")
    parser.add_argument("--job-id", help="identifier used for progress reporting")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return a copy of ``settings`` with command line values applied."""

    crawler: dict[str, Any] = {}
    if args.states:
        crawler["states"] = args.states
    if args.start_urls:
        crawler["start_urls"] = args.start_urls
    if args.concurrency is not None:
        crawler["concurrency"] = max(1, args.concurrency)
    if args.max_tasks is not None:
        crawler["max_tasks"] = max(0, args.max_tasks)
    if args.delay is not None:
        crawler["domain_delay"] = max(0.0, args.delay)
    if args.no_form:
        crawler["use_search_form"] = False
    if args.no_paginate:
        crawler["paginate"] = False

    update: dict[str, Any] = {"crawler": settings.crawler.model_copy(update=crawler)}
    if args.mongo_uri:
        update["mongo"] = settings.mongo.model_copy(update={"uri": args.mongo_uri})
    return settings.model_copy(update=update)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(get_settings(), args)
    report = run(settings, job_id=args.job_id, dump_path=args.dump)
    if report.failed and not report.fetched:
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())
