import logging
import math
from typing import Optional, Dict, Any, List, Tuple

import requests

from errors import AllEndpointsExhausted
from schemas import Endpoint, PageResult, ResourceKind

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 250


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_page(body: Any, resource: ResourceKind, page: int, per_page: int) -> PageResult:
    """
    Accepts {products: [...], meta: {...}} and {data: {products: [...], meta: {...}}}.

    total_pages comes from meta.pagination when present, otherwise from
    ceil(total_count / per_page) when meta carries current_page and total_count.
    Without either, or when their numbers do not parse, the page is treated
    as the last one.
    """
    if isinstance(body, list):
        return PageResult(records=body, page=page, per_page=per_page)
    if not isinstance(body, dict):
        return PageResult(page=page, per_page=per_page)

    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    records = body.get(resource.value) or data.get(resource.value) or []
    if not isinstance(records, list):
        records = []
    meta = body.get("meta") or data.get("meta") or {}

    if not isinstance(meta, dict):
        meta = {}

    pagination = meta.get("pagination")
    if isinstance(pagination, dict):
        total_pages = _as_int(pagination.get("total_pages"))
        if total_pages is not None:
            return PageResult(
                records=records,
                page=page,
                per_page=_as_int(pagination.get("per_page")) or per_page,
                total_pages=total_pages,
                total_count=_as_int(pagination.get("total_count")),
            )

    total_count = _as_int(meta.get("total_count"))
    if meta.get("current_page") is not None and total_count is not None:
        return PageResult(
            records=records,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_count / per_page),
            total_count=total_count,
        )

    return PageResult(records=records, page=page, per_page=per_page)


class RemoteClient:
    """GETs one page of a resource, falling through candidate endpoints until one answers 2xx."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30):
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.timeout = timeout

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get(self, url: str, token: str, params: Dict[str, Any]) -> Tuple[Any, Optional[int], Optional[str]]:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            r = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            return None, None, str(e)
        if 200 <= r.status_code < 300:
            try:
                return r.json(), r.status_code, None
            except ValueError:
                return None, r.status_code, f"HTTP {r.status_code}: response is not JSON"
        return None, r.status_code, f"HTTP {r.status_code}: {r.text[:200]}"

    def fetch_page(
        self,
        resource: ResourceKind,
        endpoints: List[Endpoint],
        token: str,
        page: int = 1,
        per_page: int = 50,
    ) -> PageResult:
        if page < 1:
            raise ValueError("page is 1-based")
        if not 1 <= per_page <= MAX_PAGE_SIZE:
            raise ValueError(f"per_page must be between 1 and {MAX_PAGE_SIZE}")
        if not endpoints:
            raise ValueError("at least one endpoint is required")

        query: Dict[str, Any] = {"page": page, "per_page": per_page}
        if resource is ResourceKind.PRODUCTS:
            query["status"] = "active"

        last_status, last_error = None, None
        for attempt, endpoint in enumerate(endpoints, start=1):
            url = endpoint.url_for(resource.value)
            logger.debug("GET %s page=%d (attempt %d/%d)", url, page, attempt, len(endpoints))
            body, status, err = self._get(url, token, {**endpoint.params, **query})
            if err is None:
                result = parse_page(body, resource, page, per_page)
                logger.info("Fetched %s page %d/%s from %s (%d records)",
                            resource.value, page, result.total_pages or "?", endpoint.base_url, len(result.records))
                return result
            logger.warning("%s endpoint %s failed: %s", resource.value, url, err)
            last_status, last_error = status, err

        raise AllEndpointsExhausted(resource.value, len(endpoints), last_status=last_status, last_error=last_error)
