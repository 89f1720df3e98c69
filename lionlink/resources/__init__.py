from lionlink.resources.api_config import endpoint, load_api_config

__all__ = ["endpoint", "load_api_config"]
