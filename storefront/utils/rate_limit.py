from typing import Dict, Any
from fastapi import Request, Response, HTTPException
from urllib.parse import urlparse
import os
import time
import hashlib
import logging

from storefront.utils.security import extract_token

logger = logging.getLogger(__name__)

def _user_key_from_request(req: Request) -> str:
    # Priorité: token de session (hashé) puis IP
    token = extract_token(req)
    path = req.url.path
    if token:
        h = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{path}"

def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance de rate limiting tolérante:
    - LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre glissante en mémoire (dev/tests)
    - app.state.rate_limit_enabled False: aucune limite
    - sinon fastapi-limiter (Redis); si indisponible, pas de 429
    """
    async def _dep(request: Request):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            now = time.time()
            key = _user_key_from_request(request)
            store = getattr(request.app.state, "_rl_store", {})
            hits = [t for t in store.get(key, []) if now - t < seconds]
            if len(hits) >= times:
                raise HTTPException(status_code=429, detail="Too Many Requests")
            hits.append(now)
            store[key] = hits
            request.app.state._rl_store = store
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        try:
            from fastapi_limiter.depends import RateLimiter
        except ImportError:
            return

        async def _identifier(req: Request) -> str:
            return _user_key_from_request(req)

        try:
            limiter = RateLimiter(times=times, seconds=seconds, identifier=_identifier)
            return await limiter(request, Response())
        except HTTPException:
            raise
        except Exception as e:
            # Redis injoignable: on laisse passer plutôt que de bloquer le checkout
            logger.warning("rate limiter indisponible path=%s err=%s", request.url.path, e)
            return
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)

    limiter_ready = False
    try:
        from fastapi_limiter import FastAPILimiter
        limiter_ready = getattr(FastAPILimiter, "redis", None) is not None
    except ImportError:
        limiter_ready = False

    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter_ready,
        "backend": "redis" if limiter_ready else None,
    }

    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if limiter_ready and redis_url:
        p = urlparse(redis_url)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}

    return info
