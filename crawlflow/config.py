from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Tuple

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

PROXY_ROTATIONS = ("round_robin", "random")


@dataclass(frozen=True)
class CrawlerConfig:
    """Explicit configuration passed into the scheduler and its collaborators.

    Invalid values raise ValueError at construction instead of being
    silently replaced with defaults.
    """

    max_concurrency: int = 10
    request_timeout: float = 30.0
    max_retries: int = 3
    exit_on_empty_queue: bool = True
    default_headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    storage_dir: str = "./storage"
    session_pool_size: int = 20
    proxy_urls: Tuple[str, ...] = ()
    proxy_rotation: str = "round_robin"
    poll_interval_secs: float = 0.1
    idle_wait_secs: float = 1.0
    browser_headless: bool = True
    browser_wait_secs: float = 5.0

    def __post_init__(self) -> None:
        if int(self.max_concurrency) < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if float(self.request_timeout) <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self.request_timeout}")
        if int(self.max_retries) < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.proxy_rotation not in PROXY_ROTATIONS:
            raise ValueError(
                f"proxy_rotation must be one of {', '.join(PROXY_ROTATIONS)}, got {self.proxy_rotation!r}"
            )
        if self.poll_interval_secs < 0 or self.idle_wait_secs < 0:
            raise ValueError("poll_interval_secs and idle_wait_secs must be >= 0")
        object.__setattr__(self, "proxy_urls", tuple(self.proxy_urls))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "CrawlerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")
        return cls(**dict(values))

    def with_overrides(self, **overrides: Any) -> "CrawlerConfig":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")
        return replace(self, **overrides)
