import threading

import httpx
import pytest

from conftest import EMPTY_LISTING, LISTING_URL, listing_page, listing_row, profile_page
from nsr_crawler.models import TaskKind
from nsr_crawler.run_crawl import apply_overrides, build_parser, crawl
from nsr_crawler.sink import MemorySink
from nsr_crawler.targets import target_for_state
from settings import Settings

SEARCH_FORM = (
    '<html><body><form action="list1pview.asp" method="post">'
    '<input type="hidden" name="token" value="abc">'
    '<select name="state_ForSearch"><option value="">any</option></select>'
    '<input type="submit" value="Search"></form></body></html>'
)

FIRST_PAGE = listing_page(
    [listing_row("100001", "Dr A"), listing_row("100002", "Dr B")],
    pagination='<div class="pagination"><a href="list1pview.asp?state_ForSearch=14&page=2">Next</a></div>',
)


class Register:
    """In-memory stand-in for the register site."""

    def __init__(self, *, failing_profiles=(), status=500):
        self.requests: list[httpx.Request] = []
        self.failing_profiles = set(failing_profiles)
        self.status = status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params
        if path == "/list11.asp":
            return httpx.Response(200, text=SEARCH_FORM)
        if path == "/list1pview.asp" and request.method == "POST":
            body = request.content.decode()
            if "token=abc" not in body or "state_ForSearch=14" not in body:
                return httpx.Response(400)
            return httpx.Response(200, text=FIRST_PAGE)
        if path == "/list1pview.asp":
            if params.get("page") == "2":
                return httpx.Response(200, text=EMPTY_LISTING)
            return httpx.Response(200, text=FIRST_PAGE)
        if path == "/nsr/ViewSpecialistProfile.jsp":
            nsr_no = params.get("nsrNo")
            if nsr_no in self.failing_profiles:
                return httpx.Response(self.status)
            return httpx.Response(200, text=profile_page(nsr_no, f"Doctor {nsr_no}"))
        return httpx.Response(404)

    def pages_fetched(self):
        return sorted(
            int(r.url.params["page"]) for r in self.requests if r.url.path == "/list1pview.asp" and "page" in r.url.params
        )

    def client_factory(self):
        transport = httpx.MockTransport(self)
        return lambda: httpx.AsyncClient(transport=transport)


@pytest.mark.asyncio
async def test_form_listing_detail_walk(crawler_settings):
    register = Register()
    sink = MemorySink()

    report = await crawl(
        [target_for_state(14)],
        settings=crawler_settings,
        sink=sink,
        client_factory=register.client_factory(),
    )

    assert report.tasks[TaskKind.FORM] == 1
    assert report.tasks[TaskKind.LISTING] == 2
    assert report.tasks[TaskKind.DETAIL] == 2
    assert register.pages_fetched() == [2]
    assert report.last_page == {"14": 2}
    assert report.failed == 0

    records = {doc["nsr_no"]: doc for doc in sink.get_all()}
    assert set(records) == {"100001", "100002"}
    assert records["100001"]["name"] == "Doctor 100001"
    assert records["100001"]["state"] == "Kuala Lumpur"
    assert report.records_emitted == 2


@pytest.mark.asyncio
async def test_failed_detail_is_counted_and_run_completes(crawler_settings):
    register = Register(failing_profiles={"100002"})
    sink = MemorySink()

    report = await crawl(
        [target_for_state(14)],
        settings=crawler_settings,
        sink=sink,
        client_factory=register.client_factory(),
    )

    assert report.failed == 1
    assert report.failures == {"14": 1}
    assert [doc["nsr_no"] for doc in sink.get_all()] == ["100001"]


@pytest.mark.asyncio
async def test_blocked_detail_is_counted(crawler_settings):
    register = Register(failing_profiles={"100001", "100002"}, status=403)

    report = await crawl(
        [target_for_state(14)],
        settings=crawler_settings,
        client_factory=register.client_factory(),
    )

    assert report.failures == {"14": 2}
    assert report.records_emitted == 0


@pytest.mark.asyncio
async def test_direct_listing_without_form_or_pagination(crawler_settings):
    register = Register()
    settings = crawler_settings.model_copy(update={"use_search_form": False, "paginate": False})

    report = await crawl([target_for_state(14)], settings=settings, client_factory=register.client_factory())

    assert all(r.method == "GET" for r in register.requests)
    assert not any(r.url.path == "/list11.asp" for r in register.requests)
    assert register.pages_fetched() == []
    assert report.tasks[TaskKind.LISTING] == 1
    assert report.tasks[TaskKind.DETAIL] == 2


@pytest.mark.asyncio
async def test_task_ceiling_stops_admission(crawler_settings):
    register = Register()
    settings = crawler_settings.model_copy(update={"max_tasks": 3})

    report = await crawl([target_for_state(14)], settings=settings, client_factory=register.client_factory())

    assert sum(report.tasks.values()) == 3
    assert report.ceiling_hit is True


@pytest.mark.asyncio
async def test_seed_urls_are_crawled(crawler_settings):
    register = Register()
    sink = MemorySink()

    report = await crawl(
        [],
        settings=crawler_settings,
        sink=sink,
        seed_urls=[f"{LISTING_URL}?state_ForSearch=14"],
        client_factory=register.client_factory(),
    )

    assert report.tasks[TaskKind.FORM] == 0
    assert register.pages_fetched() == [2]
    assert len(sink.get_all()) == 2


def test_cli_flags_override_settings():
    args = build_parser().parse_args(
        ["--state", "johor", "--state", "melaka", "--concurrency", "2", "--no-form", "--max-tasks", "50"]
    )
    settings = apply_overrides(Settings(), args)

    assert settings.crawler.states == ["johor", "melaka"]
    assert settings.crawler.concurrency == 2
    assert settings.crawler.use_search_form is False
    assert settings.crawler.max_tasks == 50
    assert settings.crawler.paginate is True


class ThreadRecordingSink(MemorySink):
    def __init__(self):
        super().__init__()
        self.threads = set()

    def upsert(self, record):
        self.threads.add(threading.get_ident())
        super().upsert(record)


class ThreadRecordingReporter:
    def __init__(self):
        self.updates = []

    def update(self, progress):
        self.updates.append((threading.get_ident(), progress))


@pytest.mark.asyncio
async def test_sink_and_progress_writes_run_off_the_event_loop(crawler_settings):
    register = Register()
    sink = ThreadRecordingSink()
    reporter = ThreadRecordingReporter()
    loop_thread = threading.get_ident()

    await crawl(
        [target_for_state(14)],
        settings=crawler_settings,
        sink=sink,
        progress=reporter,
        job_id="job-1",
        client_factory=register.client_factory(),
    )

    assert len(sink.get_all()) == 2
    assert sink.threads and loop_thread not in sink.threads
    assert reporter.updates
    assert all(thread != loop_thread for thread, _ in reporter.updates)
    final = reporter.updates[-1][1]
    assert final.done is True
    assert final.job_id == "job-1"
    assert final.records == 2
    assert not any(p.done for _, p in reporter.updates[:-1])
