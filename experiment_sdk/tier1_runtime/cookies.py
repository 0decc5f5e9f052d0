"""
experiment_sdk.tier1_runtime.cookies
────────────────────────────────────
The key-value persistence interface the engine writes through. The
visitor's browser is the only durable store for both the visitor id and
the experiment assignments, so every read and write goes through a
CookieJar.

Two jars are provided:
  - MemoryCookieJar:  dict-backed, for tests and offline evaluation
  - HeaderCookieJar:  parses an inbound ``Cookie`` header and accumulates
                      ``Set-Cookie`` header values for the response

Both refuse writes once sealed (the response has started), raising
CookieWriteError, which callers treat as "persistence failed".
"""
from __future__ import annotations

from dataclasses import dataclass
from http.cookies import SimpleCookie
from typing import Literal, Protocol, runtime_checkable

from starlette.requests import cookie_parser

from experiment_sdk.tier0_core.errors import CookieWriteError


@dataclass(frozen=True)
class CookieOptions:
    max_age: int | None = None
    path: str = "/"
    secure: bool = False
    httponly: bool = False
    samesite: Literal["lax", "strict", "none"] = "lax"


# ── Protocol ───────────────────────────────────────────────────────────────

@runtime_checkable
class CookieJar(Protocol):
    def get(self, name: str) -> str | None: ...

    def set(self, name: str, value: str, options: CookieOptions | None = None) -> None: ...

    def delete(self, name: str, *, path: str = "/") -> None: ...


# ── In-memory jar ──────────────────────────────────────────────────────────

class MemoryCookieJar:
    """
    Dict-backed jar. ``options`` keeps the last CookieOptions written per
    name so tests can assert on max-age and flags.
    """

    def __init__(self, cookies: dict[str, str] | None = None) -> None:
        self.cookies: dict[str, str] = dict(cookies or {})
        self.options: dict[str, CookieOptions] = {}
        self.sealed = False

    def get(self, name: str) -> str | None:
        return self.cookies.get(name)

    def set(self, name: str, value: str, options: CookieOptions | None = None) -> None:
        self._check_writable(name)
        self.cookies[name] = value
        self.options[name] = options or CookieOptions()

    def delete(self, name: str, *, path: str = "/") -> None:
        self._check_writable(name)
        self.cookies.pop(name, None)
        self.options.pop(name, None)

    def seal(self) -> None:
        self.sealed = True

    def _check_writable(self, name: str) -> None:
        if self.sealed:
            raise CookieWriteError(
                user_message="Cookie could not be written.",
                detail=f"cookie {name!r} written after the response started",
                cookie=name,
            )


# ── Header-backed jar ──────────────────────────────────────────────────────

class HeaderCookieJar:
    """
    Jar over raw HTTP headers, usable from any framework.

    Usage::

        jar = HeaderCookieJar(request.headers.get("cookie"))
        ...
        for value in jar.set_cookie_headers():
            response.headers.append("set-cookie", value)
    """

    def __init__(self, cookie_header: str | None = None) -> None:
        self._incoming: dict[str, str] = {}
        self._outgoing: dict[str, str] = {}
        self._sealed = False
        if cookie_header:
            # Per-pair parse: one malformed cookie never hides the others.
            self._incoming = {key: value for key, value in cookie_parser(cookie_header).items() if key}

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, name: str) -> str | None:
        return self._incoming.get(name)

    def set(self, name: str, value: str, options: CookieOptions | None = None) -> None:
        self._check_writable(name)
        opts = options or CookieOptions()
        cookie: SimpleCookie = SimpleCookie()
        cookie[name] = value
        morsel = cookie[name]
        morsel["path"] = opts.path
        if opts.max_age is not None:
            morsel["max-age"] = str(opts.max_age)
        if opts.secure:
            morsel["secure"] = True
        if opts.httponly:
            morsel["httponly"] = True
        morsel["samesite"] = opts.samesite.capitalize()
        self._outgoing[name] = morsel.OutputString()
        # Reads later in the same request see the new value
        self._incoming[name] = value

    def delete(self, name: str, *, path: str = "/") -> None:
        self._check_writable(name)
        cookie: SimpleCookie = SimpleCookie()
        cookie[name] = ""
        cookie[name]["path"] = path
        cookie[name]["max-age"] = "0"
        cookie[name]["expires"] = "Thu, 01 Jan 1970 00:00:00 GMT"
        self._outgoing[name] = cookie[name].OutputString()
        self._incoming.pop(name, None)

    def set_cookie_headers(self) -> list[str]:
        """``Set-Cookie`` values accumulated during the request, one per cookie."""
        return list(self._outgoing.values())

    def seal(self) -> None:
        self._sealed = True

    def _check_writable(self, name: str) -> None:
        if self._sealed:
            raise CookieWriteError(
                user_message="Cookie could not be written.",
                detail=f"cookie {name!r} written after the response started",
                cookie=name,
            )


__all__ = ["CookieOptions", "CookieJar", "MemoryCookieJar", "HeaderCookieJar"]
