"""HTTP client for the source platform's publish API."""

import json
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Any

import requests
import structlog
from requests.exceptions import ConnectionError, HTTPError, Timeout

from src.ingestion.source_client import SourceClientInterface
from src.models.config import SourceConfig
from src.models.timeseries import (
    ChangeEvent,
    ChangeQuery,
    ChangeQueryResponse,
    FetchedSlice,
    MetadataItem,
    TimeSeriesDescription,
    TimeSeriesPoint,
    parse_instant,
)
from src.utils.retry import call_with_retry

log = structlog.stdlib.get_logger()

AUTHENTICATION_HEADER = "X-Authentication-Token"


def _is_transient(error: Exception) -> bool:
    """Connection problems, timeouts, throttling and server errors are worth retrying."""
    if isinstance(error, HTTPError) and error.response is not None:
        status = error.response.status_code
        return status == 429 or status >= 500
    return True


def _format_instant(value: datetime) -> str:
    return value.isoformat()


class _RangeLookup:
    """Finds the time range covering an instant among non-overlapping ranges."""

    def __init__(self, ranges: list[dict[str, Any]], value_key: str):
        parsed = []
        for r in ranges:
            start = parse_instant(r.get("StartTime"))
            if start is None:
                continue
            parsed.append((start, parse_instant(r.get("EndTime")), r.get(value_key)))

        parsed.sort(key=lambda item: item[0])
        self._ranges = parsed
        self._starts = [start for start, _, _ in parsed]

    def value_at(self, instant: datetime) -> Any:
        index = bisect_right(self._starts, instant) - 1
        if index < 0:
            return None

        _, end, value = self._ranges[index]
        if end is not None and instant >= end:
            return None

        return value


class PublishClient(SourceClientInterface):
    """requests-based implementation of the source interface."""

    def __init__(self, config: SourceConfig, session: requests.Session | None = None):
        """
        Initialize publish client.

        Args:
            config: Source connection settings (URL, session token, timeout, retries)
            session: Optional pre-built session, mostly for tests
        """
        self._base_url = str(config.base_url).rstrip("/")
        self._timeout = config.timeout_seconds
        self._max_retries = config.max_retries
        self._session = session or requests.Session()
        self._session.headers[AUTHENTICATION_HEADER] = config.session_token
        self._session.headers.setdefault("Accept", "application/json")

        log.info(
            "publish_client_initialized",
            base_url=self._base_url,
            timeout_seconds=self._timeout,
        )

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "PublishClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        operation: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{operation}"
        query = {k: v for k, v in (params or {}).items() if v is not None}

        def send() -> dict[str, Any]:
            response = self._session.request(
                method,
                url,
                params=query,
                json=body,
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()

        return call_with_retry(
            send,
            operation=operation,
            max_retries=self._max_retries,
            exceptions=(ConnectionError, Timeout, HTTPError),
            should_retry=_is_transient,
        )

    def get_time_series_changes(self, query: ChangeQuery) -> ChangeQueryResponse:
        log.debug("requesting_time_series_changes", summary=query.summary())

        params = {
            "ChangesSinceToken": (
                _format_instant(query.changes_since_token)
                if query.changes_since_token is not None
                else None
            ),
            "LocationIdentifier": query.location_identifier,
            "ChangeEventType": query.change_event_type,
            "Publish": None if query.publish is None else str(query.publish).lower(),
            "Parameter": query.parameter,
            "ComputationIdentifier": query.computation_identifier,
            "ComputationPeriodIdentifier": query.computation_period_identifier,
            "ExtendedFilters": (
                json.dumps(
                    [
                        {"FilterName": f.filter_name, "FilterValue": f.filter_value}
                        for f in query.extended_filters
                    ]
                )
                if query.extended_filters
                else None
            ),
        }

        payload = self._request("GET", "GetTimeSeriesUniqueIdList", params=params)

        return ChangeQueryResponse(
            time_series_changes=[
                ChangeEvent(
                    unique_id=item["UniqueId"],
                    first_point_changed=parse_instant(item.get("FirstPointChanged")),
                    has_attribute_change=item.get("HasAttributeChange"),
                )
                for item in payload.get("TimeSeriesUniqueIds") or []
            ],
            next_token=parse_instant(payload.get("NextToken")),
            token_expired=payload.get("TokenExpired"),
            response_time=parse_instant(payload["ResponseTime"]),
        )

    def get_time_series_descriptions(self, unique_ids: list[str]) -> list[TimeSeriesDescription]:
        if not unique_ids:
            return []

        # Unique IDs travel in the body; the override keeps GET semantics on the server
        payload = self._request(
            "POST",
            "GetTimeSeriesDescriptionListByUniqueId",
            body={"TimeSeriesUniqueIds": unique_ids},
            headers={"X-HTTP-Method-Override": "GET"},
        )

        return [
            self._convert_to_description(item)
            for item in payload.get("TimeSeriesDescriptions") or []
        ]

    def get_time_series_data(
        self,
        unique_id: str,
        query_from: datetime | None,
        apply_rounding: bool = False,
    ) -> FetchedSlice:
        params = {
            "TimeSeriesUniqueId": unique_id,
            "QueryFrom": _format_instant(query_from) if query_from is not None else None,
            "ApplyRounding": str(apply_rounding).lower(),
        }

        payload = self._request("GET", "GetTimeSeriesCorrectedData", params=params)

        grades = _RangeLookup(payload.get("Grades") or [], "GradeCode")
        approvals = _RangeLookup(payload.get("Approvals") or [], "ApprovalLevel")
        qualifier_ranges = [
            (
                parse_instant(q.get("StartTime")),
                parse_instant(q.get("EndTime")),
                q.get("Identifier"),
            )
            for q in payload.get("Qualifiers") or []
        ]

        points = []
        for item in payload.get("Points") or []:
            timestamp = parse_instant(item["Timestamp"])
            value = (item.get("Value") or {}).get("Numeric")
            grade_code = grades.value_at(timestamp)
            approval_level = approvals.value_at(timestamp)
            points.append(
                TimeSeriesPoint(
                    timestamp=timestamp,
                    value=value,
                    grade_code=int(grade_code) if grade_code is not None else None,
                    approval_level=int(approval_level) if approval_level is not None else None,
                    qualifiers=[
                        identifier
                        for start, end, identifier in qualifier_ranges
                        if identifier
                        and start is not None
                        and start <= timestamp
                        and (end is None or timestamp < end)
                    ],
                )
            )

        points.sort(key=lambda p: p.timestamp)

        log.debug(
            "time_series_data_fetched",
            unique_id=unique_id,
            query_from=query_from,
            point_count=len(points),
        )

        return FetchedSlice(
            unique_id=unique_id,
            identifier=payload.get("Identifier"),
            points=points,
            query_from=query_from,
        )

    def get_location_descriptions(self, location_identifier: str) -> list[dict[str, Any]]:
        payload = self._request(
            "GET",
            "GetLocationDescriptionList",
            params={"LocationIdentifier": location_identifier},
        )
        return list(payload.get("LocationDescriptions") or [])

    def get_location_data(self, location_identifier: str) -> dict[str, Any]:
        return self._request(
            "GET", "GetLocationData", params={"LocationIdentifier": location_identifier}
        )

    def get_approvals(self) -> list[MetadataItem]:
        payload = self._request("GET", "GetApprovalList")
        return [self._convert_to_metadata(item) for item in payload.get("Approvals") or []]

    def get_grades(self) -> list[MetadataItem]:
        payload = self._request("GET", "GetGradeList")
        return [self._convert_to_metadata(item) for item in payload.get("Grades") or []]

    def get_qualifiers(self) -> list[MetadataItem]:
        payload = self._request("GET", "GetQualifierList")
        return [self._convert_to_metadata(item) for item in payload.get("Qualifiers") or []]

    @staticmethod
    def _convert_to_metadata(item: dict[str, Any]) -> MetadataItem:
        return MetadataItem(
            identifier=str(item.get("Identifier", "")),
            display_name=item.get("DisplayName") or "",
            code=item.get("Code") or "",
        )

    @staticmethod
    def _convert_to_description(item: dict[str, Any]) -> TimeSeriesDescription:
        """
        Convert a publish API description record to TimeSeriesDescription.

        Args:
            item: Raw JSON object from the description list

        Returns:
            TimeSeriesDescription model
        """
        return TimeSeriesDescription(
            unique_id=item["UniqueId"],
            identifier=item["Identifier"],
            location_identifier=item["LocationIdentifier"],
            description=item.get("Description") or "",
            parameter=item.get("Parameter"),
            unit=item.get("Unit"),
            publish=item.get("Publish"),
            computation_identifier=item.get("ComputationIdentifier"),
            computation_period_identifier=item.get("ComputationPeriodIdentifier"),
            raw_start_time=parse_instant(item.get("RawStartTime")),
            raw_end_time=parse_instant(item.get("RawEndTime")),
            utc_offset=timedelta(hours=float(item.get("UtcOffset") or 0.0)),
        )
