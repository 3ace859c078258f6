"""Pytest configuration with basic asyncio support and register page builders."""

import asyncio

import pytest

from settings import CrawlerSettings

BASE = "https://nsr.test"
SEARCH_URL = f"{BASE}/list11.asp"
LISTING_URL = f"{BASE}/list1pview.asp"


def pytest_configure(config):
    """Register the ``asyncio`` marker for asynchronous tests."""
    config.addinivalue_line(
        "markers", "asyncio: mark async test to run in event loop"
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run functions marked with ``asyncio`` in a new event loop."""
    if pyfuncitem.get_closest_marker("asyncio"):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(pyfuncitem.obj(**pyfuncitem.funcargs))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True


def listing_row(nsr_no, name, *, title="Dr", gender="Male", location="Kuala Lumpur", specialty="Cardiology"):
    return (
        "<tr>"
        f"<td>{nsr_no}</td><td>{title}</td>"
        f'<td><a href="nsr/ViewSpecialistProfile.jsp?nsrNo={nsr_no}">{name}</a></td>'
        f"<td>{gender}</td><td>{location}</td><td>{specialty}</td>"
        "</tr>"
    )


def listing_page(rows, *, pagination=""):
    header = (
        '<tr class="table-heading"><td>NSR No</td><td>Title</td><td>Name</td>'
        "<td>Gender</td><td>Location</td><td>Specialty</td></tr>"
    )
    return (
        "<html><body>"
        f'<table class="searchlist">{header}{"".join(rows)}</table>'
        f"{pagination}"
        "</body></html>"
    )


EMPTY_LISTING = (
    '<html><body><table class="searchlist"><tr class="table-heading"><td>NSR No</td></tr></table>'
    "<p>No records found</p></body></html>"
)


def profile_page(nsr_no, name, *, address="12 Jalan Ampang, 50450 Kuala Lumpur", gender="Female"):
    return f"""
    <html><body>
      <table class="table-bordered">
        <tr><th colspan="2">Personal Data</th></tr>
        <tr><td>NSR No</td><td>{nsr_no}</td></tr>
        <tr><td>Title</td><td>Dr</td></tr>
        <tr><td>Name</td><td>{name}</td></tr>
        <tr><td>Gender</td><td>{gender}</td></tr>
      </table>
      <table class="table-bordered">
        <tr><th colspan="2">Clinical Practice</th></tr>
        <tr><td>Field of Practice</td><td>Cardiology</td></tr>
        <tr><td>Name</td><td>Institut Jantung Negara</td></tr>
        <tr><td>Address</td><td>{address}</td></tr>
        <tr><td>Sector</td><td>Public</td></tr>
        <tr><td>Date of Last Renewal</td><td>05/03/2024</td></tr>
      </table>
      <table class="table-bordered">
        <tr><th colspan="3">Qualifications</th></tr>
        <tr><td>Degree/Membership/Fellowship</td><td>Awarding Body</td><td>Year</td></tr>
        <tr><td>MBBS</td><td>Universiti Malaya</td><td>2001</td></tr>
        <tr><td>MRCP</td><td>Royal College of Physicians</td><td>2008</td></tr>
      </table>
    </body></html>
    """


@pytest.fixture
def crawler_settings():
    return CrawlerSettings(
        search_url=SEARCH_URL,
        listing_url=LISTING_URL,
        concurrency=3,
        domain_delay=0,
        max_retries=1,
        retry_backoff=0,
    )
