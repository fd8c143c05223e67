from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Pattern, Tuple, Union

if TYPE_CHECKING:
    from .scheduler import Context

logger = logging.getLogger(__name__)

Handler = Callable[["Context"], Any]
PatternLike = Union[str, Pattern[str], "UrlPattern"]


class UrlPattern:
    """A URL predicate: literal substring containment or a regex search."""

    LITERAL = "literal"
    REGEX = "regex"

    def __init__(self, source: str, kind: str = LITERAL) -> None:
        if kind not in (self.LITERAL, self.REGEX):
            raise ValueError(f"Unknown pattern kind: {kind!r}")
        if not isinstance(source, str) or not source:
            raise ValueError("pattern source must be a non-empty string")
        self.source = source
        self.kind = kind
        self._regex: Optional[Pattern[str]] = None
        if kind == self.REGEX:
            try:
                self._regex = re.compile(source)
            except re.error as exc:
                raise ValueError(f"Invalid regex pattern {source!r}: {exc}") from exc

    @classmethod
    def regex(cls, source: str) -> "UrlPattern":
        return cls(source, cls.REGEX)

    @classmethod
    def coerce(cls, pattern: PatternLike) -> "UrlPattern":
        if isinstance(pattern, UrlPattern):
            return pattern
        if isinstance(pattern, re.Pattern):
            compiled = cls(pattern.pattern, cls.REGEX)
            compiled._regex = pattern
            return compiled
        if isinstance(pattern, str):
            return cls(pattern, cls.LITERAL)
        raise ValueError(f"Unsupported pattern type: {type(pattern).__name__}")

    def matches(self, url: str) -> bool:
        if self._regex is not None:
            return self._regex.search(url) is not None
        return self.source in url

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UrlPattern):
            return NotImplemented
        return self.kind == other.kind and self.source == other.source

    def __hash__(self) -> int:
        return hash((self.kind, self.source))

    def __repr__(self) -> str:
        return f"UrlPattern({self.source!r}, {self.kind!r})"


class Router:
    """Dispatches a Context to the first registered handler whose pattern matches."""

    def __init__(self) -> None:
        self._routes: List[Tuple[UrlPattern, Handler]] = []
        self._default: Optional[Handler] = None

    def register(self, pattern: PatternLike, handler: Handler) -> "Router":
        self._routes.append((UrlPattern.coerce(pattern), handler))
        return self

    def set_default(self, handler: Handler) -> "Router":
        self._default = handler
        return self

    def route(self, pattern: PatternLike) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""
        compiled = UrlPattern.coerce(pattern)

        def decorator(handler: Handler) -> Handler:
            self.register(compiled, handler)
            return handler

        return decorator

    def default(self, handler: Handler) -> Handler:
        """Decorator form of set_default()."""
        self.set_default(handler)
        return handler

    def dispatch(self, context: "Context") -> None:
        url = context.request.url
        for pattern, handler in self._routes:
            if pattern.matches(url):
                handler(context)
                return

        if self._default is not None:
            self._default(context)
        else:
            logger.warning("No route handler matched %s", url)
