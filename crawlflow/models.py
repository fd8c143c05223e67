from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

from bs4 import BeautifulSoup
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    PATCH = "PATCH"

    @classmethod
    def parse(cls, value: Any) -> "HttpMethod":
        if isinstance(value, cls):
            return value
        name = str(value).strip().upper()
        try:
            return cls(name)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"Unsupported HTTP method: {value!r}. Supported: {allowed}") from None


class FetchMode(str, Enum):
    LIGHT = "light"
    HEAVY = "heavy"


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("request url is required")
    if "://" not in url:
        url = "http://" + url.lstrip("/")
    return url


@dataclass
class Cookie:
    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: Optional[float] = None
    http_only: bool = False
    secure: bool = False
    expired: bool = False

    @property
    def is_expired(self) -> bool:
        if self.expired:
            return True
        return self.expires is not None and self.expires < time.time()


@dataclass
class Session:
    destination: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)
    cookies: List[Cookie] = field(default_factory=list)
    usage_count: int = 0
    user_agent: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Request:
    """A unit of fetch work.

    The id is assigned once and survives persistence, so two Request
    instances for the same URL are still distinct frontier items.
    """

    url: str
    method: HttpMethod = HttpMethod.GET
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        self.url = normalize_url(self.url)
        self.method = HttpMethod.parse(self.method)

    @property
    def domain(self) -> Optional[str]:
        return urlsplit(self.url).hostname

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def query_params(self) -> Dict[str, str]:
        return dict(parse_qsl(urlsplit(self.url).query, keep_blank_values=True))

    def clone(self) -> "Request":
        """Copy this request under a fresh identity."""
        payload = dict(self.payload) if isinstance(self.payload, dict) else self.payload
        return Request(
            url=self.url,
            method=self.method,
            headers=dict(self.headers),
            payload=payload,
            metadata=dict(self.metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "method": self.method.value,
            "headers": dict(self.headers),
            "payload": self.payload,
            "metadata": dict(self.metadata),
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Request":
        return cls(
            url=data["url"],
            method=data.get("method", "GET"),
            headers=dict(data.get("headers") or {}),
            payload=data.get("payload"),
            metadata=dict(data.get("metadata") or {}),
            retry_count=int(data.get("retry_count") or 0),
            id=data["id"],
        )


@dataclass(frozen=True)
class Response:
    """Outcome of executing one Request.

    Derived views (text, html, json) are computed on first access and then
    kept for the lifetime of the response.
    """

    request: Request
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: Optional[str] = None
    timing: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        body = self.body
        if body is None:
            body = b""
        elif isinstance(body, str):
            body = body.encode("utf-8")
        else:
            body = bytes(body)
        object.__setattr__(self, "body", body)
        object.__setattr__(self, "headers", CaseInsensitiveDict(dict(self.headers or {})))
        object.__setattr__(self, "url", self.url or self.request.url)

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def content_type(self) -> Optional[str]:
        raw = self.headers.get("Content-Type")
        if not raw:
            return None
        return raw.split(";")[0].strip().lower()

    @property
    def is_html(self) -> bool:
        return bool(self.content_type and "text/html" in self.content_type)

    @property
    def is_json(self) -> bool:
        return bool(self.content_type and "application/json" in self.content_type)

    @property
    def charset(self) -> str:
        raw = self.headers.get("Content-Type") or ""
        for part in raw.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip("\"'")
        return "utf-8"

    @cached_property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")

    @cached_property
    def html(self) -> BeautifulSoup:
        return BeautifulSoup(self.text, "html.parser")

    @cached_property
    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as exc:
            logger.debug("JSON decode error for %s: %s", self.url, exc)
            raise

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request": self.request.to_dict(),
            "status_code": self.status_code,
            "headers": dict(self.headers),
            "body_size": len(self.body),
            "url": self.url,
            "timing": dict(self.timing),
        }
