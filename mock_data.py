import random
from datetime import datetime, timedelta, timezone
from models import MemberDirectoryEntry, SessionRecord, UsagePayload


def generate_mock_payload(
    count: int = 200,
    end_time: datetime = None,
    days: int = 7,
    seed: int = 42
) -> UsagePayload:
    rng = random.Random(seed)
    end_time = end_time or datetime.now(timezone.utc)

    users = [f"user_{i:03d}" for i in range(1, 13)]
    environments = [f"env_{i:03d}" for i in range(1, 31)]
    classes = ["cls_small", "cls_standard", "cls_large"]
    projects = [f"proj_{i:02d}" for i in range(1, 6)]

    records = []
    for i in range(count):
        started = end_time - timedelta(
            days=rng.randint(0, max(days - 1, 0)),
            hours=rng.randint(0, 23),
            minutes=rng.randint(0, 59)
        )
        stopped = started + timedelta(minutes=rng.randint(5, 480))

        records.append(SessionRecord(
            id=f"rec_{i:05d}",
            user_id=rng.choice(users),
            environment_id=rng.choice(environments),
            environment_class_id=rng.choice(classes),
            project_id=rng.choice(projects),
            runner_id="runner_mock",
            started_at=started.strftime('%Y-%m-%dT%H:%M:%SZ'),
            # a few environments are still running
            stopped_at=stopped.strftime('%Y-%m-%dT%H:%M:%SZ') if rng.random() > 0.05 else None,
        ))

    # the last two users are not in the directory
    members = [
        MemberDirectoryEntry(
            user_id=user_id,
            display_name=f"Mock User {user_id[-3:]}",
            email=f"{user_id}@example.com",
        )
        for user_id in users[:-2]
    ]

    return UsagePayload(usage_records=records, members=members)


def mock_fetcher(start_time, end_time, organization_id=None, config=None) -> UsagePayload:
    """Stand-in for usage_client.fetch_usage_data that serves generated data."""
    end = datetime.fromisoformat(end_time.replace('Z', '+00:00'))
    start = datetime.fromisoformat(start_time.replace('Z', '+00:00'))
    return generate_mock_payload(end_time=end, days=max((end - start).days, 1))
