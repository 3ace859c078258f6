"""Capture preset and hidden fields of the search form for replay."""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag

_SKIPPED_INPUT_TYPES = {"button", "image", "reset", "file"}


def _select_value(select: Tag) -> str:
    options = select.find_all("option")
    if not options:
        return ""
    chosen = next((opt for opt in options if opt.has_attr("selected")), options[0])
    value = chosen.get("value")
    if value is None:
        value = chosen.get_text(strip=True)
    return value


def extract_form_fields(soup: BeautifulSoup) -> dict[str, str]:
    """Return ``name -> value`` for every named control under any ``<form>``.

    Text and hidden inputs contribute their ``value`` (empty when absent);
    selects contribute the selected option or, failing that, the first one;
    checkboxes and radios only count when checked and default to ``"on"``.
    A named submit input is sent as if clicked; only the first one per form
    counts since a browser submits a single button.
    """

    fields: dict[str, str] = {}
    for form in soup.find_all("form"):
        submitted = False
        for control in form.find_all(["input", "select", "textarea"]):
            name = control.get("name")
            if not name:
                continue
            if control.name == "select":
                fields[name] = _select_value(control)
                continue
            if control.name == "textarea":
                fields[name] = control.get_text()
                continue
            input_type = (control.get("type") or "text").lower()
            if input_type in _SKIPPED_INPUT_TYPES:
                continue
            if input_type == "submit":
                if not submitted:
                    fields[name] = control.get("value", "")
                    submitted = True
                continue
            if input_type in {"checkbox", "radio"}:
                if control.has_attr("checked"):
                    fields[name] = control.get("value", "on")
                continue
            fields[name] = control.get("value", "")
    return fields


def find_form_action(soup: BeautifulSoup, field_name: str) -> str | None:
    """Return the ``action`` of the form that owns ``field_name``."""
    for form in soup.find_all("form"):
        if form.find(attrs={"name": field_name}) is not None:
            return form.get("action") or None
    form = soup.find("form")
    if form is not None:
        return form.get("action") or None
    return None
