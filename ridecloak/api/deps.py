from functools import lru_cache

from ridecloak.api.events import manager
from ridecloak.config.settings import get_settings
from ridecloak.service.core import RideService, build_service

@lru_cache
def get_service() -> RideService:
    return build_service(get_settings(), publisher=manager)
