"""Crawl orchestration package.

Schedules fetch work over a deduplicated request frontier with bounded
concurrency, retries, per-destination sessions, pattern-based routing, and
adaptive selection between plain HTTP and browser rendering.

Key modules:
    models          -- Request, Response, Cookie, Session, HttpMethod, FetchMode
    config          -- CrawlerConfig explicit configuration value
    frontier        -- RequestFrontier dedup/retry work queue
    storage         -- FrontierStore and RecordSink backends (memory, JSON files)
    session_pool    -- SessionPool per-destination cookie state
    router          -- UrlPattern and Router
    base            -- Fetcher and ExchangeAdapter interfaces
    fetchers        -- HttpFetcher (requests/curl_cffi), BrowserFetcher (Playwright)
    adaptive        -- AdaptiveModeSelector and AdaptiveFetcher
    controller      -- ThreadPoolController bounded worker pool
    metrics         -- RunStatistics counters
    scheduler       -- Scheduler, Context, SchedulerState
    factory         -- FetcherFactory
    logger          -- setup_logging
"""
