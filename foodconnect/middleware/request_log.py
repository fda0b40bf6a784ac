import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("foodconnect.access")

class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        user_id = getattr(request.state, "user_id", None)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"user={user_id} ip={request.client.host if request.client else None} "
            f"{int((time.time() - start) * 1000)}ms"
        )
        return response
