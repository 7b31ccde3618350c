"""
middleware.py - Starlette adapter for the gate pipeline
=======================================================
Runs the gate in front of every route. Rejections are answered here with
the fixed JSON body; admitted requests carry the validated token claims
on ``request.state.principal`` (None for public routes).
"""
from __future__ import annotations

from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response


class GateMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        gate = request.app.state.security.gate
        decision = gate.evaluate(
            request.url.path,
            request.method,
            request.headers,
            get_remote_address(request),
        )
        if not decision.admitted:
            return JSONResponse(
                status_code=decision.status_code,
                content=decision.body(),
                headers=decision.headers,
            )

        request.state.principal = decision.claims
        request.state.client_identity = decision.client_identity
        return await call_next(request)
