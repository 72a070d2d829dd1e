"""Dependency helpers for router modules."""

from fastapi import Header
from starlette.requests import Request


def get_server(request: Request):
    return request.app.state.server


async def current_user(request: Request, authorization: str = Header(default="")) -> dict:
    return await get_server(request).auth.get_current_user(authorization)


async def admin_user(request: Request, authorization: str = Header(default="")) -> dict:
    return await get_server(request).auth.require_admin(authorization)
