from functools import lru_cache

from foodconnect.core.config import settings
from foodconnect.services.notify import EmailNotifier


@lru_cache(maxsize=1)
def get_repo():
    if settings.use_mongo:
        from foodconnect.db import get_client, get_db
        from foodconnect.repos.mongo import MongoRepo
        return MongoRepo(get_client(), get_db(), transactions=settings.mongo_transactions)
    from foodconnect.repos.inmemory import InMemoryRepo
    return InMemoryRepo()

@lru_cache(maxsize=1)
def get_notifier():
    return EmailNotifier(settings)
