"""Merging of re-polled change events into an in-flight export pass."""

from typing import Iterable

import structlog

from src.models.timeseries import ChangeEvent

log = structlog.stdlib.get_logger()


def merge_change_events(existing: ChangeEvent, new: ChangeEvent) -> ChangeEvent:
    """
    Combine two change events of the same series.

    Attribute changes are OR-ed when both are known, otherwise the known value
    wins. The first changed point is the earlier of the two, so merging can
    only widen the window that has to be fetched. The merge is commutative
    and idempotent.

    Args:
        existing: Event already queued for export
        new: Event reported by a later change query

    Returns:
        A new merged ChangeEvent

    Raises:
        ValueError: If the events belong to different series
    """
    if existing.unique_id != new.unique_id:
        raise ValueError(
            f"Cannot merge change events of different series: "
            f"{existing.unique_id} and {new.unique_id}"
        )

    if existing.has_attribute_change is not None and new.has_attribute_change is not None:
        has_attribute_change = existing.has_attribute_change or new.has_attribute_change
    elif new.has_attribute_change is not None:
        has_attribute_change = new.has_attribute_change
    else:
        has_attribute_change = existing.has_attribute_change

    if existing.first_point_changed is not None and new.first_point_changed is not None:
        first_point_changed = min(existing.first_point_changed, new.first_point_changed)
    elif new.first_point_changed is not None:
        first_point_changed = new.first_point_changed
    else:
        first_point_changed = existing.first_point_changed

    return ChangeEvent(
        unique_id=existing.unique_id,
        first_point_changed=first_point_changed,
        has_attribute_change=has_attribute_change,
    )


class ChangeSetMerger:
    """Tracks the change event of every series scheduled in a pass.

    A series stays pending from the moment it is scheduled until it is
    marked exported. Changes for a pending series are merged into its event;
    changes for any other series (new, or already exported earlier in the
    pass) schedule a fresh export.
    """

    def __init__(self, events: Iterable[ChangeEvent] = ()):
        self._events: dict[str, ChangeEvent] = {}
        self._pending: set[str] = set()
        self.merge_all(events)

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, unique_id: object) -> bool:
        return unique_id in self._events

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, unique_id: str) -> bool:
        return unique_id in self._pending

    def event_for(self, unique_id: str) -> ChangeEvent:
        return self._events[unique_id]

    def add(self, event: ChangeEvent) -> bool:
        """
        Merge or schedule a single change event.

        Returns:
            True when the event scheduled a new export, False when it was
            merged into an export that is still pending
        """
        if event.unique_id in self._pending:
            self._events[event.unique_id] = merge_change_events(
                self._events[event.unique_id], event
            )
            return False

        self._events[event.unique_id] = event
        self._pending.add(event.unique_id)
        return True

    def merge_all(self, events: Iterable[ChangeEvent]) -> list[ChangeEvent]:
        """
        Merge or schedule several change events.

        Returns:
            Events that scheduled a new export, in input order
        """
        scheduled = []
        merged_count = 0

        for event in events:
            if self.add(event):
                scheduled.append(event)
            else:
                merged_count += 1

        if merged_count:
            log.info("change_events_merged", merged=merged_count, scheduled=len(scheduled))

        return scheduled

    def mark_exported(self, unique_id: str) -> None:
        self._pending.discard(unique_id)
