"""Export pass orchestration: change detection, retrieval and destination updates."""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from src.ingestion.minimal_fetcher import MinimalTimeSeriesFetcher
from src.ingestion.recent_signal_fetcher import RecentSignalFetcher
from src.ingestion.source_client import MAXIMUM_DESCRIPTION_BATCH_SIZE, SourceClientInterface
from src.models.config import ExportConfig
from src.models.timeseries import (
    ChangeEvent,
    ChangeQuery,
    ChangeQueryResponse,
    MetadataItem,
    SamplingPeriod,
    TimeSeriesDescription,
)
from src.processing.filters import TimeSeriesDescriptionFilter, TimeSeriesPointFilter
from src.processing.frequency_estimator import FrequencyEstimator
from src.processing.point_trimmer import PointWindowTrimmer
from src.storage.observation_store import ObservationStoreInterface
from src.sync.change_merger import ChangeSetMerger, merge_change_events
from src.sync.cursor_store import ChangeCursorStore
from src.sync.location_cache import LocationInfoCache
from src.sync.models import ExportReport, PassStatus
from src.utils.errors import ExportError, FilterValidationError, TokenExpiredError

log = structlog.stdlib.get_logger()

TOKEN_LIFETIME_MARGIN = timedelta(hours=1)
BOOTSTRAP_TOKEN_MARGIN = timedelta(minutes=1)


def _find_metadata(
    items: list[MetadataItem], text: str, *selectors: Callable[[MetadataItem], str]
) -> MetadataItem | None:
    wanted = text.strip().lower()
    for item in items:
        if any(selector(item).lower() == wanted for selector in selectors):
            return item
    return None


class SyncEngine:
    """Drives one export pass from cursor resolution to cursor persistence.

    Series are exported one at a time in (location, identifier) order. The
    change cursor is read when a pass starts and written only after every
    scheduled series has been exported, so an aborted pass is retried from
    the previous cursor on the next run.
    """

    def __init__(
        self,
        source: SourceClientInterface,
        destination_factory: Callable[[], ObservationStoreInterface],
        cursor_store: ChangeCursorStore,
        config: ExportConfig,
        estimator: FrequencyEstimator | None = None,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] | None = None,
    ):
        """
        Initialize sync engine.

        Args:
            source: Source platform client
            destination_factory: Opens a destination connection (one per exported series)
            cursor_store: Persistence of the change cursor
            config: Export settings
            estimator: Optional frequency estimator (default thresholds if None)
            clock: Wall clock returning aware datetimes (UTC now if None)
            monotonic: Elapsed-time source in seconds (time.monotonic if None)
        """
        self._source = source
        self._destination_factory = destination_factory
        self._cursor_store = cursor_store
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._monotonic = monotonic or time.monotonic

        self._estimator = estimator or FrequencyEstimator()
        self._trimmer = PointWindowTrimmer(config.maximum_point_days)
        self._recent_signal_fetcher = RecentSignalFetcher(
            source, self._estimator, config.maximum_point_days, clock=self._clock
        )
        self._minimal_fetcher = MinimalTimeSeriesFetcher(
            source,
            self._recent_signal_fetcher,
            self._estimator,
            self._trimmer,
            apply_rounding=config.apply_rounding,
        )
        self._description_filter = TimeSeriesDescriptionFilter.from_config(config)

        log.info("sync_engine_initialized", dry_run=config.dry_run)

    def run(self) -> ExportReport:
        """
        Run one export pass and report its outcome.

        Never raises for pass-level failures: expected errors are reported
        with their user-facing message, anything else with the exception text.
        In both cases the cursor is left untouched.

        Returns:
            ExportReport describing the pass
        """
        start = self._monotonic()
        report = ExportReport(start_time=self._clock(), dry_run=self._config.dry_run)

        with structlog.contextvars.bound_contextvars(pass_id=uuid.uuid4().hex[:12]):
            try:
                self.run_pass(report)
            except ExportError as e:
                report.status = PassStatus.FAILED
                report.errors.append(str(e))
                log.error("export_failed", error=str(e), error_type=type(e).__name__)
            except Exception as e:
                report.status = PassStatus.FAILED
                report.errors.append(f"Export aborted: {e}")
                log.exception("export_aborted", error=str(e), error_type=type(e).__name__)
            finally:
                report.end_time = self._clock()
                report.duration_seconds = max(0.0, self._monotonic() - start)

            log.info(
                "export_pass_finished",
                status=report.status.value,
                exported_point_count=report.exported_point_count,
                exported_time_series_count=report.exported_time_series_count,
                duration_seconds=report.duration_seconds,
                summary=report.summary(),
            )

        return report

    def run_pass(self, report: ExportReport) -> None:
        """
        Run one export pass, raising on failure.

        Args:
            report: Report updated in place with counters and the persisted token

        Raises:
            ExportError: For expected, user-facing failures
            Exception: Source or destination failures propagate unchanged
        """
        config = self._config.model_copy(deep=True)

        self._validate_filters(config)

        query = self._create_filter_request(config)
        query.changes_since_token = self._resolve_cursor(config)
        report.starting_token = query.changes_since_token

        log.info("change_query_started", summary=query.summary())

        query_started = self._monotonic()
        response = self._query_changes(query, report)

        if response.token_expired:
            if config.never_resync:
                log.warning("skipping_recommended_resync", token=query.changes_since_token)
                report.status = PassStatus.SKIPPED
                report.skip_reason = (
                    f"The ChangesSinceToken of {query.changes_since_token} has expired "
                    f"and resync is disabled."
                )
                return

            log.warning(
                "change_token_expired",
                token=query.changes_since_token,
                message="Forcing a full resync. You may need to run the exporter more frequently.",
            )
            query.changes_since_token = None
            response = self._query_changes(query, report)

            if response.token_expired:
                raise TokenExpiredError(
                    "Logic-error: A full resync request reported an expired token."
                )

        bootstrap_token = (
            response.response_time
            - timedelta(seconds=self._monotonic() - query_started)
            - BOOTSTRAP_TOKEN_MARGIN
        )
        next_token = response.next_token or bootstrap_token

        descriptions = self._fetch_changed_descriptions(response, report)

        clear_exported_data = query.changes_since_token is None
        query.changes_since_token = next_token

        self._export(config, query, response, descriptions, clear_exported_data, report)

        if config.dry_run:
            log.warning("dry_run_cursor_not_saved", token=query.changes_since_token)
            return

        self._cursor_store.save(
            query.changes_since_token,
            exported_time_series_count=report.exported_time_series_count,
            exported_point_count=report.exported_point_count,
        )
        report.persisted_token = query.changes_since_token

    def _resolve_cursor(self, config: ExportConfig) -> datetime | None:
        if config.force_resync:
            log.warning("forcing_full_resync")
            return None

        persisted = self._cursor_store.load()

        if config.changes_since is not None:
            log.warning(
                "overriding_changes_since_token",
                persisted_token=persisted,
                override_token=config.changes_since,
            )
            return config.changes_since

        return persisted

    def _query_changes(self, query: ChangeQuery, report: ExportReport) -> ChangeQueryResponse:
        response = self._source.get_time_series_changes(query)
        report.change_query_count += 1

        log.info(
            "change_query_completed",
            changed_count=len(response.time_series_changes),
            token_expired=response.token_expired,
            next_token=response.next_token,
        )

        return response

    def _validate_filters(self, config: ExportConfig) -> None:
        """Resolve point filters against the source metadata lists, in place."""
        if config.approvals:
            log.info("fetching_approval_configuration")
            approvals = self._source.get_approvals()

            for approval_filter in config.approvals:
                metadata = _find_metadata(
                    approvals,
                    approval_filter.text,
                    lambda a: a.display_name,
                    lambda a: a.identifier,
                )
                if metadata is None:
                    raise FilterValidationError(f"Unknown approval '{approval_filter.text}'")

                approval_filter.text = metadata.display_name or metadata.identifier
                approval_filter.approval_level = self._parse_level(metadata, "approval")

        if config.grades:
            log.info("fetching_grade_configuration")
            grades = self._source.get_grades()

            for grade_filter in config.grades:
                metadata = _find_metadata(
                    grades,
                    grade_filter.text,
                    lambda g: g.display_name,
                    lambda g: g.identifier,
                )
                if metadata is None:
                    raise FilterValidationError(f"Unknown grade '{grade_filter.text}'")

                grade_filter.text = metadata.display_name or metadata.identifier
                grade_filter.grade_code = self._parse_level(metadata, "grade")

        if config.qualifiers:
            log.info("fetching_qualifier_configuration")
            qualifiers = self._source.get_qualifiers()

            for qualifier_filter in config.qualifiers:
                metadata = _find_metadata(
                    qualifiers, qualifier_filter.text, lambda q: q.identifier, lambda q: q.code
                )
                if metadata is None:
                    raise FilterValidationError(f"Unknown qualifier '{qualifier_filter.text}'")

                qualifier_filter.text = metadata.identifier

    @staticmethod
    def _parse_level(metadata: MetadataItem, kind: str) -> int:
        try:
            return int(metadata.identifier)
        except ValueError as e:
            raise FilterValidationError(
                f"The {kind} '{metadata.display_name}' has a non-numeric identifier "
                f"'{metadata.identifier}'"
            ) from e

    def _create_filter_request(self, config: ExportConfig) -> ChangeQuery:
        location_identifier = config.location_identifier

        if location_identifier:
            descriptions = self._source.get_location_descriptions(location_identifier)
            if not descriptions:
                raise FilterValidationError(f"Location '{location_identifier}' does not exist.")

            location_identifier = descriptions[0].get("Identifier", location_identifier)

        return ChangeQuery(
            location_identifier=location_identifier,
            change_event_type=config.change_event_type,
            publish=config.publish,
            parameter=config.parameter,
            computation_identifier=config.computation_identifier,
            computation_period_identifier=config.computation_period_identifier,
            extended_filters=list(config.extended_filters) or None,
        )

    def _fetch_changed_descriptions(
        self, response: ChangeQueryResponse, report: ExportReport
    ) -> list[TimeSeriesDescription]:
        """
        Fetch descriptions of every changed series in bounded batches.

        Returns:
            Descriptions sorted by (location, identifier). Series whose
            description vanished since the change query are left out.
        """
        unique_ids = list(dict.fromkeys(e.unique_id for e in response.time_series_changes))

        log.info("fetching_changed_descriptions", count=len(unique_ids))

        descriptions: list[TimeSeriesDescription] = []
        for start in range(0, len(unique_ids), MAXIMUM_DESCRIPTION_BATCH_SIZE):
            batch = unique_ids[start : start + MAXIMUM_DESCRIPTION_BATCH_SIZE]
            descriptions.extend(self._source.get_time_series_descriptions(batch))

        found = {d.unique_id for d in descriptions}
        for unique_id in unique_ids:
            if unique_id not in found:
                log.warning("time_series_description_missing", unique_id=unique_id)
                report.skipped_time_series.append(unique_id)

        return sorted(descriptions, key=lambda d: (d.location_identifier, d.identifier))

    def _export(
        self,
        config: ExportConfig,
        query: ChangeQuery,
        response: ChangeQueryResponse,
        descriptions: list[TimeSeriesDescription],
        clear_exported_data: bool,
        report: ExportReport,
    ) -> None:
        queue = self._description_filter.apply(descriptions)
        queued_ids = {d.unique_id for d in queue}
        merger = ChangeSetMerger(
            e for e in response.time_series_changes if e.unique_id in queued_ids
        )

        location_cache = LocationInfoCache(self._source)
        point_filter = TimeSeriesPointFilter.from_config(config)
        # Re-poll before the pass outlives the token it started from
        maximum_export_duration = config.maximum_export_duration or (
            self._cursor_store.max_token_lifetime() - TOKEN_LIFETIME_MARGIN
        )

        log.info("exporting_time_series", count=len(queue))

        if clear_exported_data:
            self._clear_exported_data(config)

        stopwatch = self._monotonic()
        position = 0

        while position < len(queue):
            description = queue[position]
            position += 1

            with structlog.contextvars.bound_contextvars(identifier=description.identifier):
                self._export_time_series(
                    config,
                    clear_exported_data,
                    merger.event_for(description.unique_id),
                    description,
                    location_cache,
                    point_filter,
                    report,
                )
            merger.mark_exported(description.unique_id)

            if self._monotonic() - stopwatch <= maximum_export_duration.total_seconds():
                continue

            log.info(
                "maximum_export_duration_elapsed",
                maximum_export_duration=str(maximum_export_duration),
                summary=query.summary(),
            )

            stopwatch = self._monotonic()

            self._fetch_new_changes(query, queue, position, merger, report)

    def _fetch_new_changes(
        self,
        query: ChangeQuery,
        queue: list[TimeSeriesDescription],
        position: int,
        merger: ChangeSetMerger,
        report: ExportReport,
    ) -> None:
        """
        Re-poll for changes and fold them into the remaining work.

        Args:
            query: Change query carrying the current token, updated in place
            queue: Export queue; entries from position onwards are still pending
            position: Index of the next series to export
            merger: Change events of the pass
            report: Pass report
        """
        response = self._query_changes(query, report)

        if response.token_expired or response.next_token is None:
            raise TokenExpiredError(
                "Logic-error: A secondary changes-since response should always have an "
                "updated token."
            )

        query.changes_since_token = response.next_token

        new_descriptions = self._description_filter.apply(
            self._fetch_changed_descriptions(response, report)
        )

        if not new_descriptions:
            return

        log.info("merging_changed_time_series", count=len(new_descriptions))

        new_events: dict[str, ChangeEvent] = {}
        for event in response.time_series_changes:
            existing = new_events.get(event.unique_id)
            new_events[event.unique_id] = (
                merge_change_events(existing, event) if existing else event
            )

        for description in new_descriptions:
            if merger.add(new_events[description.unique_id]):
                queue.append(description)
                continue

            # Still pending: refresh its description in place
            for index in range(position, len(queue)):
                if queue[index].unique_id == description.unique_id:
                    queue[index] = description
                    break

    def _clear_exported_data(self, config: ExportConfig) -> None:
        if config.dry_run:
            log.warning(
                "dry_run", action="Would have cleared the destination of all existing data."
            )
            return

        log.warning("clearing_destination")

        with self._destination_factory() as destination:
            destination.clear_datasource()
            destination.delete_deleted_observations()

    @staticmethod
    def _get_period(config: ExportConfig, description: TimeSeriesDescription) -> SamplingPeriod:
        period = SamplingPeriod.parse(description.computation_period_identifier)

        if period in config.maximum_point_days:
            return period

        return SamplingPeriod.UNKNOWN

    def _export_time_series(
        self,
        config: ExportConfig,
        clear_exported_data: bool,
        change: ChangeEvent,
        description: TimeSeriesDescription,
        location_cache: LocationInfoCache,
        point_filter: TimeSeriesPointFilter,
        report: ExportReport,
    ) -> None:
        log.info(
            "fetching_time_series_changes",
            first_point_changed=change.first_point_changed,
            has_attribute_change=change.has_attribute_change,
        )

        location_info = location_cache.get(description.location_identifier)
        period = self._get_period(config, description)

        with self._destination_factory() as destination:
            existing_sensor = destination.find_existing_sensor(description)

            result = self._minimal_fetcher.fetch(
                description,
                change,
                existing_sensor,
                period,
                clear_exported_data=clear_exported_data,
            )

            delete_existing_sensor = result.delete_existing_sensor and existing_sensor is not None
            create_sensor = existing_sensor is None or delete_existing_sensor
            time_series = point_filter.filter_points(result.time_series)

            report.exported_time_series_count += 1
            report.exported_point_count += time_series.num_points

            export_summary = dict(
                point_count=time_series.num_points,
                first_timestamp=time_series.first_timestamp,
                last_timestamp=time_series.last_timestamp,
                period=result.period.value,
            )

            if config.dry_run:
                if delete_existing_sensor:
                    log.warning(
                        "dry_run",
                        action="Would delete existing sensor",
                        sensor=existing_sensor.identifier,
                    )
                if create_sensor:
                    log.warning("dry_run", action="Would create new sensor")
                log.warning("dry_run", action="Would export points", **export_summary)
                return

            log.info("exporting_points", **export_summary)

            if delete_existing_sensor:
                destination.delete_sensor(time_series)
                destination.delete_deleted_observations()

            assigned_offering = existing_sensor.identifier if existing_sensor else None

            if create_sensor:
                assigned_offering = destination.insert_sensor(time_series).assigned_offering

            destination.insert_observation(
                assigned_offering,
                location_info.data,
                location_info.description,
                time_series,
                description,
            )
