"""Request dependencies: service components and the acting user."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from subscription_timer.config import Config
from subscription_timer.services.lifecycle import SubscriptionLifecycle
from subscription_timer.services.subscription_accessor import SubscriptionAccessor


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_accessor(request: Request) -> SubscriptionAccessor:
    return request.app.state.accessor


def get_lifecycle(request: Request) -> SubscriptionLifecycle:
    return request.app.state.lifecycle


def get_time_controller(request: Request):
    return request.app.state.time_controller


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> str:
    """Authenticated actor for mutations, taken from the X-Actor-Id header."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=401,
            detail={
                "error": "unauthenticated",
                "message": "X-Actor-Id header is required",
            },
        )
    return x_actor_id.strip()
