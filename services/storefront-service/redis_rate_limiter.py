"""Redis-backed rate limiter."""
import logging
import time
from typing import Optional, Tuple
import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import API_TOKENS, RATE_LIMIT_PER_MINUTE_IP, RATE_LIMIT_PER_MINUTE_USER
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)

SUSPICIOUS_WINDOW_SECONDS = 300

# (status predicate, key suffix, threshold, activity type)
SUSPICIOUS_PATTERNS = (
    (lambda status: status == 401, "401", 5, "credential_stuffing"),
    (lambda status: status == 404, "404", 10, "endpoint_scanning"),
    (lambda status: 400 <= status < 500, "4xx", 20, "abuse"),
)


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter shared across service instances.

    Two tiers are checked on every request: a per-IP limit and, for
    requests carrying a known bearer token, a lower per-user limit.
    Each window is a Redis sorted set of request timestamps with a TTL.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = RATE_LIMIT_PER_MINUTE_IP,
        requests_per_minute_user: int = RATE_LIMIT_PER_MINUTE_USER,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Redis connection
            requests_per_minute_ip: Max requests per IP per minute
            requests_per_minute_user: Max requests per user per minute
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds

    def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Check rate limit using a Redis sorted set.

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, current_time - window)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count before the current request was added
            count = results[1]
            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            # Fail open
            return True, 0

    def _limited(self, limit_type: str, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={
                "detail": f"Rate limit exceeded for {limit_type}. Maximum {limit} requests per minute."
            },
            headers={"Retry-After": str(self.window_seconds)}
        )

    async def dispatch(self, request: Request, call_next):
        """
        Process request with dual-tier rate limiting.

        Returns:
            Response, or 429 if rate limited
        """
        client_ip = request.client.host if request.client else "unknown"
        if "x-forwarded-for" in request.headers:
            client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()

        user_id = None
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            user_id = API_TOKENS.get(auth_header.split(" ", 1)[1])

        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )
        if not ip_allowed:
            rate_limit_exceeded_counter.add(1, {"limit_type": "ip"})
            logger.warning(
                f"Rate limit exceeded for IP {client_ip}: "
                f"{ip_count}/{self.requests_per_minute_ip} requests"
            )
            return self._limited("IP", self.requests_per_minute_ip)

        if user_id:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}",
                self.requests_per_minute_user,
                self.window_seconds
            )
            if not user_allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": "user"})
                logger.warning(
                    f"Rate limit exceeded for user {user_id}: "
                    f"{user_count}/{self.requests_per_minute_user} requests"
                )
                return self._limited("user", self.requests_per_minute_user)

        response = await call_next(request)

        self._detect_suspicious_activity(response.status_code, client_ip)

        return response

    def _detect_suspicious_activity(self, status_code: int, client_ip: str) -> Optional[str]:
        """
        Count error responses per IP over five minutes.

        Patterns:
        - Credential stuffing: 5+ 401s
        - Endpoint scanning: 10+ 404s
        - Abuse: 20+ 4xx errors

        Returns:
            The last pattern whose threshold was reached, if any
        """
        detected = None
        try:
            current_time = time.time()
            for matches, suffix, threshold, activity_type in SUSPICIOUS_PATTERNS:
                if not matches(status_code):
                    continue
                key = f"suspicious:{suffix}:{client_ip}"
                self.redis.zadd(key, {str(current_time): current_time})
                self.redis.expire(key, SUSPICIOUS_WINDOW_SECONDS + 1)

                count = self.redis.zcount(key, current_time - SUSPICIOUS_WINDOW_SECONDS, current_time)
                if count >= threshold:
                    detected = activity_type
                    suspicious_activity_counter.add(1, {"type": activity_type})
                    logger.warning(
                        f"Suspicious activity: {activity_type} from {client_ip} "
                        f"({count} responses with status {suffix} in 5 min)"
                    )
        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
        return detected
