"""Session cookie helpers. Tokens only ever leave the server as HTTP-only cookies."""
from typing import Optional

from fastapi import Request, Response

from config.settings import get_settings

settings = get_settings()


def set_access_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.cookies.access_cookie_name,
        value=token,
        max_age=settings.cookies.access_max_age,
        **settings.get_cookie_settings()
    )


def set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.cookies.refresh_cookie_name,
        value=token,
        max_age=settings.cookies.refresh_max_age,
        **settings.get_cookie_settings()
    )


def set_session_cookies(response: Response, access_token: str, refresh_token: Optional[str]) -> None:
    set_access_cookie(response, access_token)
    if refresh_token:
        set_refresh_cookie(response, refresh_token)


def clear_access_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.cookies.access_cookie_name, **settings.get_cookie_settings())


def clear_session_cookies(response: Response) -> None:
    clear_access_cookie(response)
    response.delete_cookie(key=settings.cookies.refresh_cookie_name, **settings.get_cookie_settings())


def get_access_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.cookies.access_cookie_name) or None


def get_refresh_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.cookies.refresh_cookie_name) or None
