from redis import Redis


def create_redis(url: str) -> Redis:
    """Build the process-wide sync client; callers own its lifecycle."""
    return Redis.from_url(url, decode_responses=True)


def make_key(prefix: str, *parts: str) -> str:
    return ":".join((prefix, *parts))
