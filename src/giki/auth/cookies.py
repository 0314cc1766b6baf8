from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from starlette.requests import Request
from starlette.responses import Response

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"


@dataclass(frozen=True, slots=True)
class CookieOptions:
    max_age: int
    secure: bool = False
    httponly: bool = True
    samesite: str = "strict"
    path: str = "/"


def secure_cookie_options(max_age: int, *, secure: bool) -> CookieOptions:
    return CookieOptions(max_age=int(max_age), secure=bool(secure))


class CookieJar(Protocol):
    """The browser cookie jar, as seen by the auth flow."""

    def get(self, name: str) -> str | None: ...

    def set(self, name: str, value: str, options: CookieOptions) -> None: ...

    def delete(self, name: str) -> None: ...


class RequestCookieJar:
    """
    Reads cookies from the inbound request, writes Set-Cookie headers on the
    outbound response. Writes are visible to later reads on the same jar.
    """

    def __init__(self, request: Request, response: Response, *, secure: bool = False) -> None:
        self.request = request
        self.response = response
        self.secure = secure
        self._pending: dict[str, str | None] = {}

    def get(self, name: str) -> str | None:
        if name in self._pending:
            return self._pending[name]
        return self.request.cookies.get(name) or None

    def set(self, name: str, value: str, options: CookieOptions) -> None:
        self._pending[name] = value
        self.response.set_cookie(
            name,
            value,
            max_age=options.max_age,
            path=options.path,
            secure=options.secure,
            httponly=options.httponly,
            samesite=options.samesite,  # type: ignore[arg-type]
        )

    def delete(self, name: str) -> None:
        self._pending[name] = None
        self.response.delete_cookie(
            name, path="/", secure=self.secure, httponly=True, samesite="strict"
        )


class MemoryCookieJar:
    """Dict-backed jar for driving the auth flow without an HTTP stack."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})
        self.options: dict[str, CookieOptions] = {}

    def get(self, name: str) -> str | None:
        return self.values.get(name) or None

    def set(self, name: str, value: str, options: CookieOptions) -> None:
        self.values[name] = value
        self.options[name] = options

    def delete(self, name: str) -> None:
        self.values.pop(name, None)
        self.options.pop(name, None)
