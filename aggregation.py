"""
Aggregation Engine for Environment Usage Data.
Turns a flat list of session records plus a member directory into the
per-user and per-environment summary views shown on the dashboard.

The engine is pure: it keeps no state between calls, never mutates its
inputs and never raises for bad upstream data. Records that cannot be
aggregated are skipped and logged at DEBUG level.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from models import (
    EnvironmentSubview,
    EnvironmentUsageView,
    GroupBy,
    MemberDirectoryEntry,
    SessionEntry,
    SessionRecord,
    UsagePayload,
    UserUsageView,
)

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0

SessionInput = Union[SessionRecord, Dict[str, Any]]
MemberInput = Union[MemberDirectoryEntry, Dict[str, Any]]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Args:
        value: Timestamp string, e.g. "2024-01-01T00:00:00Z"

    Returns:
        Aware datetime (naive input is read as UTC), or None if the value
        is missing or unparseable
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_duration_hours(start_time: str, end_time: str) -> float:
    """
    Calculate the length of a session in fractional hours.

    Args:
        start_time: ISO-8601 start instant
        end_time: ISO-8601 stop instant

    Returns:
        (end - start) in hours, negative if the instants are inverted

    Raises:
        ValueError: If either timestamp cannot be parsed
    """
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if start is None or end is None:
        raise ValueError(f"Unparseable session timestamps: {start_time!r} -> {end_time!r}")
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def is_eligible(record: SessionRecord) -> bool:
    """
    Decide whether a session record takes part in aggregation.

    A record is eligible when userId, environmentId, startedAt and stoppedAt
    are all present, both timestamps parse, and the session does not stop
    before it starts.
    """
    if not (record.user_id and record.environment_id and record.started_at and record.stopped_at):
        return False
    start = parse_timestamp(record.started_at)
    end = parse_timestamp(record.stopped_at)
    if start is None or end is None:
        return False
    return end >= start


def build_member_directory(members: Iterable[MemberInput]) -> Dict[str, MemberDirectoryEntry]:
    """
    Build the userId -> member lookup. The last entry for a duplicated userId wins.
    """
    directory: Dict[str, MemberDirectoryEntry] = {}
    for member in _coerce_members(members):
        directory[member.user_id] = member
    return directory


def resolve_member(user_id: str, directory: Dict[str, MemberDirectoryEntry]) -> Tuple[str, str]:
    """
    Resolve the display name and email for a user.

    Falls back to the raw userId as the name and an empty email when the
    directory has no entry (or the entry has no display name).
    """
    member = directory.get(user_id)
    if member is None:
        return user_id, ''
    return member.display_name or user_id, member.email or ''


def sort_by_total_hours(views: List[Any]) -> List[Any]:
    """Sort views by totalHours, descending. Equal totals keep first-seen order."""
    return sorted(views, key=lambda view: view.total_hours, reverse=True)


def _coerce_sessions(sessions: Iterable[SessionInput]) -> Iterator[SessionRecord]:
    for idx, session in enumerate(sessions):
        if isinstance(session, SessionRecord):
            yield session
            continue
        try:
            yield SessionRecord.model_validate(session)
        except ValidationError as exc:
            logger.debug("[AGGREGATE] Skipping malformed session at index %d: %s", idx, exc)


def _coerce_members(members: Iterable[MemberInput]) -> Iterator[MemberDirectoryEntry]:
    for idx, member in enumerate(members):
        if isinstance(member, MemberDirectoryEntry):
            yield member
            continue
        try:
            yield MemberDirectoryEntry.model_validate(member)
        except ValidationError as exc:
            logger.debug("[AGGREGATE] Skipping malformed member at index %d: %s", idx, exc)


def _eligible_sessions(sessions: Iterable[SessionInput]) -> Iterator[Tuple[SessionRecord, float]]:
    """Yield (record, duration_hours) for every eligible session, in input order."""
    skipped = 0
    for record in _coerce_sessions(sessions):
        if not is_eligible(record):
            skipped += 1
            continue
        yield record, calculate_duration_hours(record.started_at, record.stopped_at)
    if skipped:
        logger.debug("[AGGREGATE] Skipped %d ineligible session records", skipped)


class _EnvironmentAccumulator:
    """Running totals for one (environment, user) group."""

    def __init__(self, environment_id: str, user_id: str, user_name: str, email: str, order: int):
        self.environment_id = environment_id
        self.user_id = user_id
        self.user_name = user_name
        self.email = email
        self.order = order
        self.total_hours = 0.0
        self.sessions: List[SessionEntry] = []

    def add(self, record: SessionRecord, duration_hours: float) -> None:
        self.total_hours += duration_hours
        self.sessions.append(SessionEntry(
            start_time=record.started_at,
            end_time=record.stopped_at,
            duration_hours=duration_hours,
        ))

    def finalize(self, view_cls=EnvironmentSubview):
        return view_cls(
            environment_id=self.environment_id,
            user_id=self.user_id,
            user_name=self.user_name,
            email=self.email,
            total_hours=self.total_hours,
            sessions=list(self.sessions),
        )


class _UserAccumulator:
    """Running totals for one user, with a nested group per environment."""

    def __init__(self, user_id: str, user_name: str, email: str, order: int):
        self.user_id = user_id
        self.user_name = user_name
        self.email = email
        self.order = order
        self.total_hours = 0.0
        self.environments: Dict[str, _EnvironmentAccumulator] = {}

    def add(self, record: SessionRecord, duration_hours: float) -> None:
        self.total_hours += duration_hours
        environment = self.environments.get(record.environment_id)
        if environment is None:
            environment = _EnvironmentAccumulator(
                record.environment_id,
                self.user_id,
                self.user_name,
                self.email,
                order=len(self.environments),
            )
            self.environments[record.environment_id] = environment
        environment.add(record, duration_hours)

    def finalize(self) -> UserUsageView:
        ordered = sorted(self.environments.values(), key=lambda acc: acc.order)
        return UserUsageView(
            user_id=self.user_id,
            user_name=self.user_name,
            email=self.email,
            total_hours=self.total_hours,
            environments=[acc.finalize(EnvironmentSubview) for acc in ordered],
        )


def aggregate_by_user(
    sessions: Iterable[SessionInput],
    members: Iterable[MemberInput]
) -> List[UserUsageView]:
    """
    Aggregate session records per user.

    Args:
        sessions: Session records (models or upstream JSON dicts), may be empty
        members: Member directory entries, may be empty or incomplete

    Returns:
        One UserUsageView per distinct userId among eligible records, sorted
        by totalHours descending. Each view lists its environments in the
        order they were first seen for that user.
    """
    directory = build_member_directory(members)
    users: Dict[str, _UserAccumulator] = {}

    for record, duration_hours in _eligible_sessions(sessions):
        user = users.get(record.user_id)
        if user is None:
            user_name, email = resolve_member(record.user_id, directory)
            user = _UserAccumulator(record.user_id, user_name, email, order=len(users))
            users[record.user_id] = user
        user.add(record, duration_hours)

    ordered = sorted(users.values(), key=lambda acc: acc.order)
    views = sort_by_total_hours([acc.finalize() for acc in ordered])
    logger.debug("[AGGREGATE] Built %d user views", len(views))
    return views


def aggregate_by_environment(
    sessions: Iterable[SessionInput],
    members: Iterable[MemberInput]
) -> List[EnvironmentUsageView]:
    """
    Aggregate session records per (environmentId, userId) pair.

    The same environment used by two users yields two separate views.

    Args:
        sessions: Session records (models or upstream JSON dicts), may be empty
        members: Member directory entries, may be empty or incomplete

    Returns:
        EnvironmentUsageView list sorted by totalHours descending
    """
    directory = build_member_directory(members)
    groups: Dict[Tuple[str, str], _EnvironmentAccumulator] = {}

    for record, duration_hours in _eligible_sessions(sessions):
        key = (record.environment_id, record.user_id)
        group = groups.get(key)
        if group is None:
            user_name, email = resolve_member(record.user_id, directory)
            group = _EnvironmentAccumulator(
                record.environment_id,
                record.user_id,
                user_name,
                email,
                order=len(groups),
            )
            groups[key] = group
        group.add(record, duration_hours)

    ordered = sorted(groups.values(), key=lambda acc: acc.order)
    views = sort_by_total_hours([acc.finalize(EnvironmentUsageView) for acc in ordered])
    logger.debug("[AGGREGATE] Built %d environment views", len(views))
    return views


def aggregate(payload: UsagePayload, group_by: GroupBy = GroupBy.USER) -> list:
    """Aggregate a fetched payload in the requested grouping mode."""
    if GroupBy(group_by) is GroupBy.ENVIRONMENT:
        return aggregate_by_environment(payload.usage_records, payload.members)
    return aggregate_by_user(payload.usage_records, payload.members)
