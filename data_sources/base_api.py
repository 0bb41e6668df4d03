"""
Base HTTP client with rate limiting, caching, and retry handling.
The Supabase REST client and the Pokemon TCG API client inherit from this.
"""

from collections import OrderedDict
from typing import Optional, Dict, Any, Callable, Tuple, Union, Sequence
import random
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import time
import logging
from functools import wraps
import threading

from core.constants import API_TIMEOUT_DEFAULT, CACHE_MAX_SIZE

# Configuration belongs to the application entrypoint, not library modules
logger = logging.getLogger(__name__)

# "minimal" or "detailed"
_RETRY_LOG_VERBOSITY = "minimal"


def set_retry_logging_verbosity(mode: str) -> None:
    """Set retry logging verbosity for API calls ("minimal" or "detailed")."""
    global _RETRY_LOG_VERBOSITY
    _RETRY_LOG_VERBOSITY = "detailed" if str(mode).lower() == "detailed" else "minimal"


class RateLimitExceeded(Exception):
    """Raised when an upstream API answers 429"""

    def __init__(self, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after} seconds.")


class APIError(Exception):
    """Upstream API or transport failure"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimiter:
    """Thread-safe minimum-interval limiter shared by all calls of one client"""

    def __init__(self, calls_per_second: float = 1.0):
        """
        Args:
            calls_per_second: Maximum requests per second (e.g., 0.5 = 1 req per 2 sec)
        """
        self.calls_per_second = calls_per_second
        self.min_interval = 1.0 / calls_per_second
        self.last_call_time = 0.0
        self.total_waits = 0
        self.lock = threading.RLock()

    def wait_if_needed(self):
        """Block until the next call is allowed"""
        with self.lock:
            elapsed = time.time() - self.last_call_time

            if elapsed < self.min_interval:
                sleep_time = self.min_interval - elapsed
                # Jitter keeps workers from waking in lockstep
                sleep_time += random.uniform(0, min(0.25, 0.1 * self.min_interval))
                logger.debug(f"Rate limiting: sleeping {sleep_time:.2f}s")
                self.total_waits += 1
                time.sleep(sleep_time)

            self.last_call_time = time.time()


class ResponseCache:
    """Thread-safe in-memory cache with TTL and LRU eviction."""

    def __init__(self, default_ttl: int = 3600, max_size: int = CACHE_MAX_SIZE):
        self.cache: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None if absent or expired."""
        with self.lock:
            entry = self.cache.get(key)
            if entry is not None:
                value, expiry = entry
                if time.monotonic() < expiry:
                    self.cache.move_to_end(key)
                    self.hits += 1
                    return value
                del self.cache[key]
                logger.debug(f"Cache expired: {key}")
            self.misses += 1
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """Store a value, evicting the least recently used entries when full."""
        with self.lock:
            while len(self.cache) >= self.max_size:
                oldest_key, _ = self.cache.popitem(last=False)
                logger.debug(f"Cache evicted (LRU): {oldest_key}")
                self.evictions += 1

            ttl = ttl or self.default_ttl
            self.cache[key] = (value, time.monotonic() + ttl)
            self.sets += 1
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Cache set: %s (TTL: %ss) %s", key, ttl, self.stats())

    def clear(self):
        with self.lock:
            self.cache.clear()
            logger.info("Cache cleared")

    def stats(self) -> Dict[str, int]:
        """Return cache counters for observability."""
        with self.lock:
            return {
                "hits": self.hits,
                "misses": self.misses,
                "sets": self.sets,
                "evictions": self.evictions,
                "size": len(self.cache),
                "capacity": self.max_size,
            }

    def size(self) -> int:
        with self.lock:
            return len(self.cache)


def retry_with_backoff(max_retries: int = 3, base_delay: float = 1.0):
    """
    Retry a call on transport errors and 429s.

    Transport errors back off exponentially (base_delay * 2**attempt);
    RateLimitExceeded waits for its retry_after.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    if _RETRY_LOG_VERBOSITY == "detailed":
                        logger.debug(f"Attempt {attempt + 1}/{max_retries + 1}: {func.__qualname__}")
                    return func(*args, **kwargs)
                except (requests.RequestException, RateLimitExceeded) as e:
                    if attempt == max_retries:
                        logger.error(f"Max retries ({max_retries}) reached for {func.__qualname__}: {e}")
                        raise

                    if isinstance(e, RateLimitExceeded):
                        delay = e.retry_after
                    else:
                        delay = base_delay * (2 ** attempt)

                    if _RETRY_LOG_VERBOSITY == "detailed":
                        logger.warning(f"Attempt {attempt + 1} failed for {func.__qualname__}: {e}. Retrying in {delay}s...")
                    else:
                        logger.warning(f"Attempt {attempt + 1} failed ({type(e).__name__}). Retrying...")
                    time.sleep(delay)

            return None

        return wrapper

    return decorator


TimeoutType = Union[int, float, Tuple[int, int], Tuple[float, float]]
ParamsType = Union[Dict[str, Any], Sequence[Tuple[str, Any]]]


class BaseAPIClient:
    """
    Base class for HTTP API clients.
    Provides rate limiting, caching, error mapping, and retry logic.

    Subclasses set cache_namespace and may override _parse_response.
    """

    cache_namespace = "api"

    POOL_CONNECTIONS = 10
    POOL_MAXSIZE = 20
    MAX_RETRIES = 3
    BACKOFF_FACTOR = 0.5
    RETRY_STATUS_CODES = frozenset({500, 502, 503, 504})

    def __init__(
            self,
            base_url: str,
            rate_limit: float = 1.0,
            cache_ttl: int = 3600,
            user_agent: Optional[str] = None,
            timeout: TimeoutType = API_TIMEOUT_DEFAULT,
            endpoint_ttls: Optional[Dict[str, int]] = None,
            headers: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            base_url: Base URL for the API
            rate_limit: Requests per second
            cache_ttl: Default cache time-to-live in seconds
            user_agent: Custom User-Agent header
            timeout: Request timeout, seconds or (connect, read)
            endpoint_ttls: Per-endpoint cache TTLs
            headers: Extra headers sent with every request
        """
        self.base_url = base_url.rstrip('/')
        self.rate_limiter = RateLimiter(calls_per_second=rate_limit)
        self.cache = ResponseCache(default_ttl=cache_ttl)
        self.timeout: TimeoutType = timeout
        self.endpoint_ttls: Dict[str, int] = endpoint_ttls or {}
        self.user_agent = user_agent or "TCG-Price-Tracker/0.1"

        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': self.user_agent,
            'Accept': 'application/json'
        })
        if headers:
            self.session.headers.update(headers)

        retry_strategy = Retry(
            total=self.MAX_RETRIES,
            backoff_factor=self.BACKOFF_FACTOR,
            status_forcelist=self.RETRY_STATUS_CODES,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False
        )
        adapter = HTTPAdapter(
            pool_connections=self.POOL_CONNECTIONS,
            pool_maxsize=self.POOL_MAXSIZE,
            max_retries=retry_strategy
        )
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)

        logger.info(f"Initialized {self.__class__.__name__} - Rate: {rate_limit} req/s, Cache TTL: {cache_ttl}s")

    def _get_cache_key(self, endpoint: str, params: Optional[ParamsType] = None) -> str:
        """Cache key for a GET request; parameter order does not matter."""
        items = params.items() if isinstance(params, dict) else (params or [])
        return f"{self.cache_namespace}:{endpoint.lstrip('/')}:{sorted(items)}"

    def _parse_response(self, response: requests.Response) -> Any:
        """Turn a successful response into the value returned to callers."""
        return response.json()

    @retry_with_backoff(max_retries=3)
    def _make_request(
            self,
            method: str,
            endpoint: str,
            params: Optional[ParamsType] = None,
            data: Optional[Any] = None,
            headers: Optional[Dict[str, str]] = None,
            use_cache: bool = True,
            ttl_override: Optional[int] = None,
            timeout_override: Optional[TimeoutType] = None,
    ) -> Any:
        """
        Make an HTTP request with rate limiting and caching.

        Only GET requests are cached.

        Raises:
            RateLimitExceeded: If the API returns 429
            APIError: For other HTTP errors and transport failures
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        cacheable = method.upper() == 'GET' and use_cache

        if cacheable:
            cached_response = self.cache.get(self._get_cache_key(endpoint, params))
            if cached_response is not None:
                return cached_response

        self.rate_limiter.wait_if_needed()

        try:
            logger.debug(f"{method} {url} - params: {params}")

            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                headers=headers,
                timeout=(timeout_override if timeout_override is not None else self.timeout)
            )
        except requests.RequestException as e:
            logger.error(f"Request failed: {e}")
            raise APIError(f"Request failed: {e}")

        if response.status_code == 429:
            retry_after = int(response.headers.get('Retry-After', 60))
            logger.warning(f"Rate limited! Retry after {retry_after}s")
            raise RateLimitExceeded(retry_after=retry_after)

        if response.status_code >= 400:
            error_msg = f"API error {response.status_code}: {response.text[:200]}"
            logger.error(error_msg)
            raise APIError(error_msg, status_code=response.status_code)

        result = self._parse_response(response)

        if cacheable:
            ttl_to_use = int(ttl_override) if ttl_override is not None else self.endpoint_ttls.get(endpoint)
            self.cache.set(self._get_cache_key(endpoint, params), result, ttl=ttl_to_use)

        logger.debug(f"Request successful: {method} {endpoint}")
        return result

    def get(self, endpoint: str, params: Optional[ParamsType] = None, use_cache: bool = True,
            ttl_override: Optional[int] = None, timeout_override: Optional[TimeoutType] = None) -> Any:
        """GET request wrapper"""
        return self._make_request('GET', endpoint, params=params, use_cache=use_cache,
                                  ttl_override=ttl_override, timeout_override=timeout_override)

    def clear_cache(self):
        self.cache.clear()

    def get_cache_size(self) -> int:
        return self.cache.size()

    def close(self):
        """Close the underlying HTTP session"""
        self.session.close()
        logger.info(f"Closed {self.__class__.__name__}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
