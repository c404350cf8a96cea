"""Turn backend error payloads into per-item or summary errors.

Kept free of transport code: callers hand in an exception or a raw payload,
and get back an ``ErrorReport``. Structured errors (stock, row validation)
suppress the generic summary so a failure is reported once.
"""

import html
import re
from typing import Any, Dict, List, Optional

from gateway import BackendError
from schemas import ErrorReport, GenericError, StockError, ValidationIssue
from services.payload_normalizer import parse_server_messages

STOCK_MARKERS = ("insufficient stock", "stock unavailable")
STOCK_PREFIX = "Insufficient Stock:"

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_UL_OPEN_RE = re.compile(r"<ul[^>]*>", re.IGNORECASE)
_UL_CLOSE_RE = re.compile(r"</ul>", re.IGNORECASE)
_LI_OPEN_RE = re.compile(r"<li[^>]*>", re.IGNORECASE)
_LI_CLOSE_RE = re.compile(r"</li>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_ITEM_SPLIT_RE = re.compile(r"Item:\s*")
_ITEM_CODE_RE = re.compile(r"^([A-Z0-9-]+)")
_ITEM_SEARCH_RE = re.compile(r"Item:\s*([A-Z0-9-]+)")


def strip_html(text: str) -> str:
    text = _BR_RE.sub("\n", text or "")
    text = _UL_OPEN_RE.sub("\n", text)
    text = _UL_CLOSE_RE.sub("", text)
    text = _LI_OPEN_RE.sub("• ", text)
    text = _LI_CLOSE_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text)


def summarize(text: str, title: str = "Error") -> GenericError:
    lines = [line.strip() for line in strip_html(text).splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return GenericError(summary="Unknown error", title=title or "Error")
    return GenericError(summary=lines[0], detail="\n".join(lines[1:]), title=title or "Error")


def _is_stock_message(entry: Dict[str, Any]) -> bool:
    message = str(entry.get("message") or "").lower()
    title = str(entry.get("title") or "").lower()
    return any(marker in message for marker in STOCK_MARKERS) or "stock" in title


def parse_stock_errors(messages: List[Dict[str, Any]]) -> List[StockError]:
    errors: List[StockError] = []
    for entry in messages:
        if not _is_stock_message(entry):
            continue
        title = str(entry.get("title") or "Stock Unavailable")
        indicator = str(entry.get("indicator") or "red")
        text = strip_html(str(entry.get("message") or ""))

        found: List[StockError] = []
        for fragment in _ITEM_SPLIT_RE.split(text):
            fragment = fragment.strip()
            if not fragment or fragment == STOCK_PREFIX:
                continue
            if fragment.startswith(STOCK_PREFIX):
                fragment = fragment[len(STOCK_PREFIX):].strip()
            match = _ITEM_CODE_RE.match(fragment)
            if not match:
                continue
            found.append(
                StockError(
                    item_code=match.group(1),
                    message=f"Item: {fragment}",
                    title=title,
                    indicator=indicator,
                )
            )

        if not found:
            match = _ITEM_SEARCH_RE.search(text)
            if match:
                found.append(
                    StockError(
                        item_code=match.group(1),
                        message=" ".join(text.split()),
                        title=title,
                        indicator=indicator,
                    )
                )
        errors.extend(found)
    return errors


def _find_item_errors(payload: Dict[str, Any]) -> List[Any]:
    candidates = [payload]
    for key in ("data", "message"):
        nested = payload.get(key)
        if isinstance(nested, dict):
            candidates.append(nested)
    for candidate in candidates:
        entries = candidate.get("item_error")
        if isinstance(entries, list):
            return entries
    return []


def parse_item_errors(payload: Dict[str, Any]) -> List[ValidationIssue]:
    issues = []
    for entry in _find_item_errors(payload):
        if not isinstance(entry, dict):
            continue
        idx = entry.get("idx")
        try:
            idx = int(idx) if idx is not None else None
        except (TypeError, ValueError):
            idx = None
        issues.append(
            ValidationIssue(
                item_code=str(entry.get("item_code") or ""),
                message=strip_html(str(entry.get("error") or entry.get("message") or "")).strip(),
                idx=idx,
            )
        )
    return issues


def _server_messages(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    messages = parse_server_messages(payload.get("_server_messages"))
    if messages:
        return messages
    data = payload.get("data")
    if isinstance(data, dict):
        return parse_server_messages(data.get("_server_messages"))
    return []


def classify_payload(payload: Dict[str, Any], fallback: str = "") -> ErrorReport:
    messages = _server_messages(payload)
    if not messages:
        text = payload.get("message") or payload.get("exception") or fallback
        if isinstance(text, str) and text:
            messages = [{"message": text, "title": payload.get("title") or ""}]

    stock_errors = parse_stock_errors(messages)
    validation_errors = parse_item_errors(payload)
    if stock_errors or validation_errors:
        return ErrorReport(stock_errors=stock_errors, validation_errors=validation_errors)

    first: Optional[Dict[str, Any]] = messages[0] if messages else None
    if first:
        return ErrorReport(
            generic=summarize(str(first.get("message") or fallback), str(first.get("title") or "Error"))
        )
    return ErrorReport(generic=summarize(fallback))


def classify_error(exc: BaseException) -> ErrorReport:
    if isinstance(exc, BackendError):
        return classify_payload(exc.payload, exc.message)
    return ErrorReport(generic=summarize(str(exc) or exc.__class__.__name__))
