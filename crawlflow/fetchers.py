from __future__ import annotations

import logging
import queue
import random
import re
import threading
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional

import requests
from curl_cffi import requests as curl_requests
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .base import ExchangeAdapter, Fetcher
from .config import CrawlerConfig
from .models import Cookie, FetchMode, HttpMethod, Request, Response
from .session_pool import SessionPool

logger = logging.getLogger(__name__)

# Splits a comma-joined Set-Cookie header without breaking "expires=Wed, 21 Oct ..."
_SET_COOKIE_SPLIT = re.compile(r",\s*(?=[^;,]*=)")


def _parse_expires(value: str) -> Optional[float]:
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, IndexError):
        return None


def parse_set_cookie(raw: str, default_domain: str) -> List[Cookie]:
    """Parse one (possibly comma-joined) Set-Cookie header value."""
    cookies: List[Cookie] = []
    for cookie_str in _SET_COOKIE_SPLIT.split(raw or ""):
        parts = [p.strip() for p in cookie_str.split(";")]
        if not parts or "=" not in parts[0]:
            continue
        name, value = parts[0].split("=", 1)
        cookie = Cookie(name=name.strip(), value=value.strip(), domain=default_domain)
        for attr in parts[1:]:
            key, _, attr_value = attr.partition("=")
            key = key.strip().lower()
            if key == "httponly":
                cookie.http_only = True
            elif key == "secure":
                cookie.secure = True
            elif key == "path" and attr_value:
                cookie.path = attr_value
            elif key == "domain" and attr_value:
                cookie.domain = attr_value.lstrip(".")
            elif key == "expires" and cookie.expires is None:
                cookie.expires = _parse_expires(attr_value)
            elif key == "max-age":
                try:
                    cookie.expires = time.time() + int(attr_value)
                except ValueError:
                    continue
        cookie.expired = cookie.expires is not None and cookie.expires <= time.time()
        cookies.append(cookie)
    return cookies


class HttpExchange(ExchangeAdapter):
    """Adapter over a requests or curl_cffi response."""

    def __init__(self, response: Any, domain: str) -> None:
        self._response = response
        self._domain = domain

    def extract_cookies(self) -> List[Cookie]:
        raw = self._response.headers.get("Set-Cookie")
        if not raw:
            return []
        return parse_set_cookie(raw, self._domain)

    def extract_headers(self) -> Dict[str, str]:
        return {str(k): str(v) for k, v in self._response.headers.items()}


class BrowserExchange(ExchangeAdapter):
    """Adapter over the headers and cookie dicts captured from a Playwright context."""

    def __init__(self, headers: Mapping[str, str], cookies: List[Dict[str, Any]]) -> None:
        self._headers = headers
        self._cookies = cookies

    def extract_cookies(self) -> List[Cookie]:
        now = time.time()
        cookies: List[Cookie] = []
        for raw in self._cookies:
            expires = raw.get("expires")
            # Playwright reports session cookies with expires == -1
            if expires is not None and expires < 0:
                expires = None
            cookies.append(
                Cookie(
                    name=raw["name"],
                    value=raw.get("value", ""),
                    domain=(raw.get("domain") or "").lstrip("."),
                    path=raw.get("path") or "/",
                    expires=expires,
                    http_only=bool(raw.get("httpOnly")),
                    secure=bool(raw.get("secure")),
                    expired=expires is not None and expires <= now,
                )
            )
        return cookies

    def extract_headers(self) -> Dict[str, str]:
        return dict(self._headers)


class HttpFetcher(Fetcher):
    """Light fetch path: a plain HTTP exchange without rendering.

    Uses requests by default; when `impersonate` names a browser target
    (e.g. "chrome120") the exchange goes through a curl_cffi session so the
    TLS fingerprint matches that browser.
    """

    mode = FetchMode.LIGHT

    def __init__(
        self,
        session_pool: SessionPool,
        config: Optional[CrawlerConfig] = None,
        impersonate: Optional[str] = None,
    ) -> None:
        self._session_pool = session_pool
        self._config = config or CrawlerConfig()
        self._impersonate = impersonate
        self._proxy_lock = threading.Lock()
        self._proxy_index = 0

    def fetch(self, request: Request) -> Response:
        start = time.time()
        domain = request.domain or ""
        self._session_pool.get(domain)

        headers = dict(request.headers)
        cookie_header = self._session_pool.cookie_header(domain)
        if cookie_header:
            headers["Cookie"] = cookie_header

        params = data = None
        if request.payload is not None:
            if request.method is HttpMethod.GET:
                params = request.payload
            else:
                data = request.payload

        proxy = self._select_proxy()
        proxies = {"http": proxy, "https": proxy} if proxy else None

        if self._impersonate:
            session = curl_requests.Session()
            try:
                resp = session.request(
                    method=request.method.value,
                    url=request.url,
                    params=params,
                    data=data,
                    headers=headers,
                    proxies=proxies,
                    impersonate=self._impersonate,
                    timeout=self._config.request_timeout,
                    allow_redirects=True,
                )
            finally:
                session.close()
        else:
            resp = requests.request(
                request.method.value,
                request.url,
                params=params,
                data=data,
                headers=headers,
                proxies=proxies,
                timeout=self._config.request_timeout,
                allow_redirects=True,
            )

        exchange = HttpExchange(resp, domain)
        cookies = exchange.extract_cookies()
        if cookies:
            self._session_pool.update_cookies(domain, cookies)

        return Response(
            request=request,
            status_code=int(resp.status_code),
            headers=exchange.extract_headers(),
            body=resp.content,
            url=str(resp.url),
            timing=self._timing(start, self.mode),
        )

    def _select_proxy(self) -> Optional[str]:
        proxy_urls = self._config.proxy_urls
        if not proxy_urls:
            return None
        if self._config.proxy_rotation == "random":
            return random.choice(proxy_urls)
        with self._proxy_lock:
            proxy = proxy_urls[self._proxy_index % len(proxy_urls)]
            self._proxy_index += 1
        return proxy


class _RenderJob:
    def __init__(self, url: str, headers: Dict[str, str], cookies: List[Cookie]) -> None:
        self.url = url
        self.headers = headers
        self.cookies = cookies
        self.result: "queue.Queue[_RenderResult]" = queue.Queue(maxsize=1)


class _RenderResult:
    def __init__(
        self,
        content: str = "",
        final_url: Optional[str] = None,
        status: int = 0,
        headers: Optional[Dict[str, str]] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.content = content
        self.final_url = final_url
        self.status = status
        self.headers = headers or {}
        self.cookies = cookies or []
        self.error = error


class BrowserFetcher(Fetcher):
    """Heavy fetch path: renders pages in headless Chromium via Playwright.

    Playwright's sync objects are bound to the thread that created them, so a
    single dedicated render thread owns the browser and worker threads hand
    it jobs through a queue, blocking until their result comes back.
    """

    mode = FetchMode.HEAVY

    def __init__(self, session_pool: SessionPool, config: Optional[CrawlerConfig] = None) -> None:
        self._session_pool = session_pool
        self._config = config or CrawlerConfig()
        self._jobs: "queue.Queue[Optional[_RenderJob]]" = queue.Queue()
        self._init_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def fetch(self, request: Request) -> Response:
        if request.method is not HttpMethod.GET:
            raise ValueError(f"Browser fetch only supports GET, got {request.method.value}")

        start = time.time()
        domain = request.domain or ""
        session = self._session_pool.get(domain)
        headers = {
            k: v for k, v in request.headers.items() if k.lower() not in ("cookie", "user-agent")
        }
        job = _RenderJob(request.url, headers, [c for c in session.cookies if not c.is_expired])

        thread = self._ensure_worker_running()
        self._jobs.put(job)
        result = self._wait_for(job, thread)
        if result.error is not None:
            raise result.error

        exchange = BrowserExchange(result.headers, result.cookies)
        cookies = exchange.extract_cookies()
        if cookies:
            self._session_pool.update_cookies(domain, cookies)

        response_headers = exchange.extract_headers()
        response_headers.setdefault("content-type", "text/html; charset=utf-8")
        return Response(
            request=request,
            status_code=result.status,
            headers=response_headers,
            body=result.content,
            url=result.final_url or request.url,
            timing=self._timing(start, self.mode),
        )

    def close(self) -> None:
        with self._init_lock:
            thread = self._thread
            self._thread = None
        if thread is not None and thread.is_alive():
            self._jobs.put(None)
            thread.join(timeout=10)

    def _ensure_worker_running(self) -> threading.Thread:
        with self._init_lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._render_loop, daemon=True, name="RenderWorker")
                self._thread.start()
            return self._thread

    @staticmethod
    def _wait_for(job: _RenderJob, thread: threading.Thread) -> _RenderResult:
        while True:
            try:
                return job.result.get(timeout=1.0)
            except queue.Empty:
                if not thread.is_alive() and job.result.empty():
                    raise RuntimeError("render thread stopped before the page was rendered") from None

    def _render_loop(self) -> None:
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=self._config.browser_headless,
                    args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
                )
                logger.info("Render thread started")
                try:
                    while True:
                        job = self._jobs.get()
                        if job is None:
                            break
                        job.result.put(self._render(browser, job))
                finally:
                    browser.close()
        except Exception as exc:  # noqa: BLE001
            logger.critical("Render thread failed: %s", exc)
            self._fail_pending(exc)

    def _render(self, browser: Any, job: _RenderJob) -> _RenderResult:
        context = browser.new_context(
            user_agent=self._config.default_headers.get("User-Agent"),
            extra_http_headers=job.headers,
        )
        try:
            if job.cookies:
                context.add_cookies([self._to_browser_cookie(c, job.url) for c in job.cookies])
            page = context.new_page()
            navigation = page.goto(
                job.url,
                wait_until="domcontentloaded",
                timeout=self._config.request_timeout * 1000,
            )
            try:
                page.wait_for_load_state("networkidle", timeout=self._config.browser_wait_secs * 1000)
            except PlaywrightTimeoutError:
                logger.debug("Network did not go idle for %s; using current DOM", job.url)
            return _RenderResult(
                content=page.content(),
                final_url=page.url,
                status=navigation.status if navigation is not None else 200,
                headers=navigation.all_headers() if navigation is not None else {},
                cookies=context.cookies(),
            )
        except Exception as exc:  # noqa: BLE001
            return _RenderResult(error=exc)
        finally:
            context.close()

    def _fail_pending(self, exc: BaseException) -> None:
        while True:
            try:
                job = self._jobs.get_nowait()
            except queue.Empty:
                return
            if job is not None:
                job.result.put(_RenderResult(error=exc))

    @staticmethod
    def _to_browser_cookie(cookie: Cookie, url: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": cookie.name,
            "value": cookie.value,
            "httpOnly": cookie.http_only,
            "secure": cookie.secure,
        }
        if cookie.domain:
            data["domain"] = cookie.domain
            data["path"] = cookie.path or "/"
        else:
            data["url"] = url
        if cookie.expires is not None:
            data["expires"] = cookie.expires
        return data
