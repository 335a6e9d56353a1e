from django.conf import settings
from django.core.cache import cache


def lease_key(task_id: str) -> str:
    return f"poll-lease:{task_id}"


def lease_timeout() -> int:
    """Outlive the longest possible poll so a crashed poller's lease still expires."""
    return int(settings.GENERATION_POLL_INTERVAL * settings.GENERATION_POLL_MAX_ATTEMPTS) + 60


def acquire_poll_lease(task_id: str, owner: str) -> bool:
    """Claim the right to poll a task id. Only one owner can hold it."""
    return cache.add(lease_key(task_id), owner, lease_timeout())


def release_poll_lease(task_id: str, owner: str) -> None:
    if cache.get(lease_key(task_id)) == owner:
        cache.delete(lease_key(task_id))
