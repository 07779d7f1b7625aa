from .api import SubaApiClient, get_api_client

__all__ = ["SubaApiClient", "get_api_client"]
