import pytest

from conftest import EMPTY_LISTING, LISTING_URL, SEARCH_URL, listing_page, listing_row, profile_page
from nsr_crawler.frontier import Admission, DedupSet, Frontier
from nsr_crawler.models import DetailTask, FormTask, ListingTask, TaskKind
from nsr_crawler.targets import target_for_state, target_from_url, targets_for


def test_default_targets_skip_special_buckets():
    keys = [t.key for t in targets_for()]
    assert keys == [str(i) for i in range(1, 17)]
    assert "20" not in keys and "9999" not in keys


def test_named_targets_resolve_aliases_and_skip_unknown():
    targets = targets_for(["Penang", "atlantis", "9", "Missing"])
    assert [(t.key, t.label) for t in targets] == [("9", "Pulau Pinang"), ("9999", "Missing")]
    assert targets[1].is_special


def test_seed_url_target_follows_its_filter():
    assert target_from_url(f"{LISTING_URL}?state_ForSearch=4&page=2").key == "4"
    other = target_from_url("https://elsewhere.test/list")
    assert other.key == "https://elsewhere.test/list"
    assert other.filter_value is None


def test_task_dedup_keys():
    target = target_for_state(4)
    assert FormTask(url=SEARCH_URL, target=target).dedup_key == "FORM:4"
    assert ListingTask(url=LISTING_URL, target=target, page=3).dedup_key == "LISTING:4:3"
    assert DetailTask(url="u", target=target, nsr_no="123456").dedup_key == "DETAIL:123456"


@pytest.mark.asyncio
async def test_dedup_set_admits_each_key_once_and_honours_limit():
    seen = DedupSet(limit=2)
    assert await seen.add("a") is Admission.ADDED
    assert await seen.add("a") is Admission.DUPLICATE
    assert await seen.add("b") is Admission.ADDED
    assert await seen.add("c") is Admission.FULL
    assert "a" in seen and len(seen) == 2


@pytest.mark.asyncio
async def test_detail_rediscovered_from_two_listings_is_scheduled_once(crawler_settings):
    frontier = Frontier(crawler_settings)
    johor, melaka = target_for_state(1), target_for_state(4)
    first = DetailTask(url="u", target=johor, nsr_no="123456")
    again = DetailTask(url="u", target=melaka, nsr_no="123456")

    assert await frontier.offer(first) is True
    assert await frontier.offer(again) is False
    assert frontier.accepted[TaskKind.DETAIL] == 1


@pytest.mark.asyncio
async def test_ceiling_marks_frontier_saturated(crawler_settings):
    frontier = Frontier(crawler_settings.model_copy(update={"max_tasks": 1}))
    target = target_for_state(1)
    assert await frontier.offer(ListingTask(url=LISTING_URL, target=target, page=1))
    assert not await frontier.offer(ListingTask(url=LISTING_URL, target=target, page=2))
    assert frontier.saturated


def test_initial_task_depends_on_form_setting(crawler_settings):
    target = target_for_state(12)
    assert isinstance(Frontier(crawler_settings).initial_task(target), FormTask)

    direct = Frontier(crawler_settings.model_copy(update={"use_search_form": False})).initial_task(target)
    assert isinstance(direct, ListingTask)
    assert direct.url == f"{LISTING_URL}?state_ForSearch=12"
    assert direct.page == 1


def test_form_becomes_post_with_replayed_fields(crawler_settings):
    frontier = Frontier(crawler_settings)
    form_html = (
        '<form action="list1pview.asp" method="post"><input type="hidden" name="token" value="abc">'
        '<select name="state_ForSearch"><option value="">any</option></select></form>'
    )
    task = FormTask(url=SEARCH_URL, target=target_for_state(14))
    outcome = frontier.advance(task, form_html, SEARCH_URL)

    [listing] = outcome.tasks
    assert isinstance(listing, ListingTask)
    assert listing.method == "POST"
    assert listing.url == LISTING_URL
    assert listing.page == 1
    assert listing.payload == {"token": "abc", "state_ForSearch": "14"}


def test_listing_schedules_details_and_next_page(crawler_settings):
    frontier = Frontier(crawler_settings)
    html = listing_page(
        [listing_row("100001", "A"), listing_row("100002", "B")],
        pagination='<a href="list1pview.asp?state_ForSearch=14&page=2">Next</a>',
    )
    task = ListingTask(url=LISTING_URL, target=target_for_state(14), page=1, method="POST")
    outcome = frontier.advance(task, html, LISTING_URL)

    details = [t for t in outcome.tasks if isinstance(t, DetailTask)]
    listings = [t for t in outcome.tasks if isinstance(t, ListingTask)]
    assert [d.nsr_no for d in details] == ["100001", "100002"]
    assert details[0].stub is not None
    assert [(t.page, t.method) for t in listings] == [(2, "GET")]


def test_pagination_can_be_switched_off(crawler_settings):
    frontier = Frontier(crawler_settings.model_copy(update={"paginate": False}))
    html = listing_page([listing_row("100001", "A")], pagination='<a href="?state_ForSearch=14&page=2">Next</a>')
    task = ListingTask(url=LISTING_URL, target=target_for_state(14))
    outcome = frontier.advance(task, html, LISTING_URL)
    assert all(isinstance(t, DetailTask) for t in outcome.tasks)


def test_empty_listing_ends_the_walk(crawler_settings):
    frontier = Frontier(crawler_settings)
    task = ListingTask(url=f"{LISTING_URL}?state_ForSearch=14&page=2", target=target_for_state(14), page=2)
    outcome = frontier.advance(task, EMPTY_LISTING, task.url)
    assert outcome.tasks == [] and outcome.records == []


def test_detail_produces_record_with_listing_region(crawler_settings):
    frontier = Frontier(crawler_settings)
    listing = ListingTask(url=LISTING_URL, target=target_for_state(1))
    [detail] = frontier.advance(
        listing, listing_page([listing_row("100001", "A", location="Johor")]), LISTING_URL
    ).tasks

    html = profile_page("100001", "Dr A", address="Unit 3, Somewhere Plaza")
    [record] = frontier.advance(detail, html, detail.url).records
    assert record.nsr_no == "100001"
    assert record.state == "Johor"
