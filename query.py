"""
Query-string to MongoDB filter translation, plus pagination.

Each resource declares a `FilterConfig`: a table of `FieldRule` entries mapping
a query parameter onto a document field with one matching kind, and the
fields a free-text `search` runs over. `build_filter` walks the table, so the
routers never branch on individual parameters.
"""
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from database import INT64_MAX, INT64_MIN, parse_object_id
from errors import InvalidQuery, NotFound

EXACT = "exact"
SUBSTRING = "substring"
GTE = "gte"
LTE = "lte"
MEMBER = "member"

EMPTY_PAGE = "empty"
PAGE_NOT_FOUND = "not_found"

MAX_LIMIT = 100


def parse_number(raw: Any) -> float:
    value = float(str(raw).strip())
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"{raw!r} is not a finite number")
    return value


def _whole_number(raw: Any) -> int:
    text = str(raw).strip()
    try:
        return int(text)
    except ValueError:
        value = parse_number(text)
    if not value.is_integer():
        raise ValueError(f"{raw!r} is not a whole number")
    return int(value)


def parse_int(raw: Any) -> int:
    value = _whole_number(raw)
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"{raw!r} is out of range")
    return value


def parse_date(raw: Any) -> datetime:
    text = str(raw).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = datetime.combine(date.fromisoformat(text), time.min)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_number(raw: Any) -> bool:
    try:
        parse_number(raw)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class FieldRule:
    param: str
    field: str
    kind: str = EXACT
    cast: Optional[Callable[[Any], Any]] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class FilterConfig:
    rules: Tuple[FieldRule, ...]
    search_text: Tuple[str, ...] = ()
    search_numeric: Tuple[str, ...] = ()
    search_param: str = "search"


def _present(raw: Any) -> bool:
    return raw is not None and str(raw).strip() != ""


def _substring(raw: Any) -> Dict[str, str]:
    return {"$regex": re.escape(str(raw)), "$options": "i"}


def build_filter(params: Mapping[str, Any], config: FilterConfig) -> Dict[str, Any]:
    """Translate query parameters into a filter expression.

    Range bounds are applied before exact matches so that an exact value on
    the same field wins. A bound that does not parse is skipped; an exact
    value that does not cast raises InvalidQuery.
    """
    clauses: Dict[str, Any] = {}
    ranged = [r for r in config.rules if r.kind in (GTE, LTE)]
    others = [r for r in config.rules if r.kind not in (GTE, LTE)]

    for rule in ranged:
        raw = params.get(rule.param)
        if not _present(raw):
            continue
        try:
            value = (rule.cast or parse_number)(raw)
        except ValueError:
            continue
        bound = clauses.setdefault(rule.field, {})
        bound[f"${rule.kind}"] = value

    for rule in others:
        raw = params.get(rule.param)
        if not _present(raw):
            continue
        if rule.kind == SUBSTRING:
            clauses[rule.field] = _substring(raw)
            continue
        value = raw
        if rule.cast is not None:
            try:
                value = rule.cast(raw)
            except ValueError:
                raise InvalidQuery(rule.error or f"Invalid value for {rule.param}")
        if rule.kind == MEMBER:
            clauses[rule.field] = {"$in": [value]}
        else:
            clauses[rule.field] = value

    term = params.get(config.search_param)
    if _present(term):
        alternatives: List[Dict[str, Any]] = [{f: _substring(term)} for f in config.search_text]
        if is_number(term):
            number = parse_number(term)
            alternatives.extend({f: {"$gte": number}} for f in config.search_numeric)
        if alternatives:
            clauses["$or"] = alternatives

    return clauses


@dataclass
class Page:
    items: List[dict]
    current_page: int
    total_pages: int
    total_count: int

    def as_dict(self, serializer: Callable[[dict], Any]) -> Dict[str, Any]:
        return {
            "items": [serializer(d) for d in self.items],
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "total_count": self.total_count,
        }


def page_bounds(params: Mapping[str, Any], default_limit: int) -> Tuple[int, int]:
    try:
        page = _whole_number(params.get("page"))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = _whole_number(params.get("limit"))
    except (TypeError, ValueError):
        limit = default_limit
    if limit < 1:
        limit = default_limit
    return max(page, 1), min(limit, MAX_LIMIT)


def paginate(
    repo,
    filter_dict: Dict[str, Any],
    params: Mapping[str, Any],
    default_limit: int,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    out_of_range: str = EMPTY_PAGE,
) -> Page:
    page, limit = page_bounds(params, default_limit)
    total = repo.count(filter_dict)
    total_pages = math.ceil(total / limit)
    if out_of_range == PAGE_NOT_FOUND and page > total_pages and total_pages != 0:
        raise NotFound("Page not found")
    if page > total_pages:
        return Page(items=[], current_page=page, total_pages=total_pages, total_count=total)
    items = repo.find(filter_dict, sort=sort, skip=(page - 1) * limit, limit=limit)
    return Page(items=items, current_page=page, total_pages=total_pages, total_count=total)


def object_id_cast(raw: Any):
    return parse_object_id(str(raw).strip())
