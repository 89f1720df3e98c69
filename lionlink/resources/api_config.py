from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any


@lru_cache
def load_api_config() -> dict[str, Any]:
    resource = resources.files("lionlink.resources").joinpath("api_config.json")
    with resource.open("r", encoding="utf-8") as f:
        return json.load(f)


def endpoint(key: str, /, **params: str) -> str:
    """Format the ``ENDPOINTS[key]`` template; ``params`` may include ``name``."""
    template = load_api_config()["ENDPOINTS"][key]
    return template.format(**params)
