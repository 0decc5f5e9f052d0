"""
experiment_sdk.tier3_platform.middleware
────────────────────────────────────────
ASGI middleware that evaluates experiments once per HTTP request. The
downstream app finds the results on ``scope["state"]``:

    experiment       Assignment | None
    visitor_id       str
    request_context  RequestContext
    cookie_jar       HeaderCookieJar (for clear_assignments and friends)

Cookies written during the request are appended to the response as
``Set-Cookie`` headers. Once the response has started the jar is sealed,
and further writes raise CookieWriteError.

Supports: FastAPI / Starlette, or any ASGI 3 app.
"""
from __future__ import annotations

from typing import Any

from experiment_sdk.tier0_core.config import ExperimentsConfig
from experiment_sdk.tier0_core.logging import bind_context, clear_context, get_logger
from experiment_sdk.tier1_runtime.context import RequestContext
from experiment_sdk.tier1_runtime.cookies import HeaderCookieJar
from experiment_sdk.tier3_platform.experiments import ExperimentEngine
from experiment_sdk.tier3_platform.visitor import get_or_create_visitor_id

logger = get_logger(__name__)


def _decode_headers(scope: dict) -> tuple[dict[str, str], str | None]:
    headers: dict[str, str] = {}
    cookies: list[str] = []
    for raw_name, raw_value in scope.get("headers", []):
        name = raw_name.decode("latin-1").lower()
        value = raw_value.decode("latin-1")
        if name == "cookie":
            cookies.append(value)
        else:
            headers[name] = value
    return headers, "; ".join(cookies) or None


class ExperimentASGIMiddleware:
    """
    Usage (FastAPI / Starlette)::

        engine = ExperimentEngine(ExperimentRepository(SqlExperimentSource()))
        app.add_middleware(ExperimentASGIMiddleware, engine=engine)

        @app.get("/")
        async def home(request: Request):
            assignment = request.state.experiment
    """

    def __init__(self, app: Any, engine: ExperimentEngine, *, config: ExperimentsConfig | None = None) -> None:
        self.app = app
        self.engine = engine
        self.config = config or engine.config

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers, cookie_header = _decode_headers(scope)
        jar = HeaderCookieJar(cookie_header)
        ctx = RequestContext.from_headers(
            scope.get("path"),
            headers,
            query_string=scope.get("query_string", b"").decode("latin-1"),
        )
        visitor_id = get_or_create_visitor_id(jar, config=self.config)
        bind_context(request_id=ctx.request_id, visitor_id=visitor_id)

        try:
            assignment = await self.engine.get_active_experiment(visitor_id, jar, ctx)
            logger.debug(
                "experiments.request_evaluated",
                path=ctx.path,
                experiment_id=assignment.experiment_id if assignment else None,
                variant_id=assignment.variant_id if assignment else None,
            )

            state = scope.setdefault("state", {})
            state["experiment"] = assignment
            state["visitor_id"] = visitor_id
            state["request_context"] = ctx
            state["cookie_jar"] = jar

            async def send_with_cookies(message: dict) -> None:
                if message["type"] == "http.response.start":
                    extra = [
                        (b"set-cookie", value.encode("latin-1"))
                        for value in jar.set_cookie_headers()
                    ]
                    jar.seal()
                    if extra:
                        message = {**message, "headers": [*message.get("headers", []), *extra]}
                await send(message)

            await self.app(scope, receive, send_with_cookies)
        finally:
            clear_context()


__all__ = ["ExperimentASGIMiddleware"]
