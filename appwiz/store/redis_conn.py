from functools import lru_cache
from redis import Redis
from appwiz.settings import settings


@lru_cache(maxsize=4)
def _client_for(url: str) -> Redis:
    # One pooled client per URL; drafts and metrics share it.
    return Redis.from_url(url, decode_responses=True)


def get_redis() -> Redis:
    return _client_for(settings.REDIS_URL)
