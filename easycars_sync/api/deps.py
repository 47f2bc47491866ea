"""Shared FastAPI dependencies"""

from easycars_sync.services.easycars_client import EasyCarsApiClient
from easycars_sync.services.token_cache import get_token_cache


def get_api_client() -> EasyCarsApiClient:
    """EasyCars client backed by the process-wide token cache."""
    return EasyCarsApiClient(get_token_cache())
