from contextvars import ContextVar
from typing import Optional

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_stripe_event_id_ctx: ContextVar[Optional[str]] = ContextVar("stripe_event_id", default=None)


def set_request_id(request_id: str):
    return _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def set_stripe_event_id(event_id: Optional[str]):
    return _stripe_event_id_ctx.set(event_id)


def reset_stripe_event_id(token) -> None:
    _stripe_event_id_ctx.reset(token)


def get_stripe_event_id() -> Optional[str]:
    return _stripe_event_id_ctx.get()
