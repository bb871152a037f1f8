"""Zoho CRM query gateway - REST API implementation."""

import logging
from typing import Dict, List, Optional, Sequence

import requests

from ..core.exceptions import GatewayError
from ..core.metrics import track_gateway_latency
from ..schemas.query import Condition, FilterExpression, GatewayPage, SortSpec, validate_identifier

logger = logging.getLogger(__name__)


def quote_literal(value: str) -> str:
    """Quote a string literal for COQL, escaping backslashes and quotes."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def render_condition(condition: Condition) -> str:
    """Render one condition as a COQL predicate."""
    if condition.operator == "between":
        if len(condition.values) != 2:
            raise ValueError(f"BETWEEN on {condition.field} needs exactly two values")
        low, high = condition.values
        return f"{condition.field} BETWEEN {quote_literal(low)} AND {quote_literal(high)}"

    if condition.operator == "eq":
        if len(condition.values) != 1:
            raise ValueError(f"= on {condition.field} needs exactly one value")
        return f"{condition.field} = {quote_literal(condition.values[0])}"

    if not condition.values:
        raise ValueError(f"IN on {condition.field} needs at least one value")
    return f"{condition.field} IN ({', '.join(quote_literal(v) for v in condition.values)})"


def build_coql_query(
    entity_type: str,
    fields: Sequence[str],
    filter_expression: FilterExpression,
    sort_spec: Optional[SortSpec],
    limit: int,
    offset: int
) -> str:
    """Build a COQL select query from structured parts.

    Args:
        entity_type: Module API name (e.g. Leads)
        fields: Field API names to select
        filter_expression: Conditions joined with AND
        sort_spec: Optional ordering
        limit: Page size
        offset: Rows to skip

    Returns:
        COQL query string
    """
    validate_identifier(entity_type)
    select = ", ".join(validate_identifier(f) for f in fields)
    where = " AND ".join(render_condition(c) for c in filter_expression.conditions)

    query = f"SELECT {select} FROM {entity_type} WHERE {where}"
    if sort_spec is not None:
        query += f" ORDER BY {sort_spec.field} {'asc' if sort_spec.ascending else 'desc'}"
    query += f" LIMIT {int(offset)}, {int(limit)}"
    return query


class ZohoCrmService:
    """Query gateway over the Zoho CRM REST API.

    A non-empty filter expression goes through the COQL endpoint (offset
    paging); an empty one lists the module's records (page-number paging)
    and leaves all filtering to the caller.
    """

    def __init__(
        self,
        base_url: str,
        fields: Sequence[str],
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """Initialize the gateway.

        Args:
            base_url: e.g. https://www.zohoapis.com/crm/v2
            fields: Field API names to request
            access_token: OAuth access token sent as-is
            timeout: Per-request timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.base_url = base_url.rstrip("/")
        self.fields = list(fields)
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> "ZohoCrmService":
        return cls(
            base_url=settings.zoho_base_url,
            fields=[settings.created_time_field, settings.source_field, settings.service_field],
            access_token=settings.zoho_access_token,
            timeout=settings.request_timeout,
        )

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Zoho-oauthtoken {self.access_token}"
        return headers

    def _send(self, operation: str, method: str, url: str, **kwargs) -> Dict:
        """Send one request and decode the JSON body.

        Returns:
            Decoded body; empty dict for 204 No Content

        Raises:
            GatewayError: on timeout, transport error, non-2xx status or bad JSON
        """
        try:
            with track_gateway_latency(operation):
                response = self.session.request(
                    method, url, headers=self._build_headers(), timeout=self.timeout, **kwargs
                )
        except requests.exceptions.Timeout as e:
            logger.error(f"{operation} request timed out after {self.timeout}s: {e}")
            raise GatewayError(f"{operation} request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"{operation} request failed: {e}")
            raise GatewayError(f"{operation} request failed: {e}") from e

        if response.status_code == 204:
            return {}

        if response.status_code != 200:
            logger.error(f"API error ({response.status_code}): {response.text}")
            raise GatewayError(
                f"{operation} returned HTTP {response.status_code}",
                upstream_status=response.status_code,
                details={"body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(f"{operation} returned a non-JSON body") from e

        if not isinstance(body, dict):
            raise GatewayError(f"{operation} returned a non-object body")
        return body

    def query_page(
        self,
        entity_type: str,
        filter_expression: Optional[FilterExpression],
        sort_spec: Optional[SortSpec],
        page_size: int,
        page_token: Optional[int]
    ) -> GatewayPage:
        """Fetch one page of raw rows.

        Args:
            entity_type: Module API name
            filter_expression: Server-side filter; None or empty lists all records
            sort_spec: Optional ordering
            page_size: Rows per page
            page_token: Offset (COQL) or page number (records API) from the previous page

        Returns:
            GatewayPage
        """
        if filter_expression is None or filter_expression.is_empty:
            return self._list_records(entity_type, sort_spec, page_size, page_token or 1)
        return self._coql_page(entity_type, filter_expression, sort_spec, page_size, page_token or 0)

    def _coql_page(
        self,
        entity_type: str,
        filter_expression: FilterExpression,
        sort_spec: Optional[SortSpec],
        page_size: int,
        offset: int
    ) -> GatewayPage:
        query = build_coql_query(entity_type, self.fields, filter_expression, sort_spec, page_size, offset)
        logger.debug(f"COQL page at offset {offset}: {query}")

        data = self._send("coql", "POST", f"{self.base_url}/coql", json={"select_query": query})
        rows = self._rows(data)

        return GatewayPage(
            records=rows,
            has_more=self._more_records(data),
            next_token=offset + len(rows),
        )

    def _list_records(
        self,
        entity_type: str,
        sort_spec: Optional[SortSpec],
        page_size: int,
        page: int
    ) -> GatewayPage:
        validate_identifier(entity_type)
        params = {
            "fields": ",".join(self.fields),
            "page": page,
            "per_page": page_size,
        }
        if sort_spec is not None:
            params["sort_by"] = sort_spec.field
            params["sort_order"] = "asc" if sort_spec.ascending else "desc"

        logger.debug(f"Listing {entity_type} page {page} ({page_size} per page)")
        data = self._send("records", "GET", f"{self.base_url}/{entity_type}", params=params)

        return GatewayPage(
            records=self._rows(data),
            has_more=self._more_records(data),
            next_token=page + 1,
        )

    @staticmethod
    def _rows(data: Dict) -> List[Dict]:
        rows = data.get("data") or []
        if not isinstance(rows, list):
            raise GatewayError("response 'data' is not a list")
        if not all(isinstance(row, dict) for row in rows):
            raise GatewayError("response row is not an object")
        return rows

    @staticmethod
    def _more_records(data: Dict) -> Optional[bool]:
        if not data:
            return False
        info = data.get("info")
        if not isinstance(info, dict) or "more_records" not in info:
            return None
        return bool(info["more_records"])
