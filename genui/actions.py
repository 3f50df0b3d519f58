"""Stateless actions: follow-up calls embedded in components.

A component's ``ComponentActions`` carry the endpoint, method and complete
payload of every call the client may make from it, so executing one needs
no lookup in the conversation that produced it. ``ActionExecutor`` performs
such a call over HTTP.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from genui.document import ComponentAction, ComponentActions, DismissAction

logger = logging.getLogger(__name__)

_TIMEOUT = 15.0


# ---------------------------------------------------------------------------
# Action helpers
# ---------------------------------------------------------------------------


def submit_actions(endpoint: str, method: str = "POST", cancel_message: str | None = None) -> ComponentActions:
    """Form actions: submit to ``endpoint``, cancel closes the form."""
    return ComponentActions(
        on_submit=ComponentAction(endpoint=endpoint, method=method),
        on_cancel=DismissAction(message=cancel_message),
    )


def confirmation_actions(
    endpoint: str,
    payload: Any,
    method: str = "POST",
    confirm_message: str | None = None,
    cancel_message: str | None = "Cancelled",
) -> ComponentActions:
    """Confirm performs the call with the full payload embedded."""
    return ComponentActions(
        on_confirm=ComponentAction(
            endpoint=endpoint,
            method=method,
            payload=payload,
            confirm_message=confirm_message,
        ),
        on_cancel=DismissAction(message=cancel_message),
    )


def delete_actions(endpoint: str, record_id: Any, label: str | None = None) -> ComponentActions:
    return confirmation_actions(
        endpoint,
        payload={"id": record_id},
        method="DELETE",
        confirm_message=f"Delete {label or 'this item'}? This cannot be undone.",
    )


def row_click_actions(detail_endpoint: str) -> ComponentActions:
    """``detail_endpoint`` may hold ``{field}`` placeholders the client fills
    from the clicked row."""
    return ComponentActions(on_row_click=ComponentAction(endpoint=detail_endpoint, method="GET"))


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ActionResult(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    data: Any = None


def _result_from_body(body: Any) -> ActionResult:
    if isinstance(body, dict) and isinstance(body.get("success"), bool):
        return ActionResult(
            success=body["success"],
            message=body.get("message"),
            error=body.get("error"),
            data=body.get("data"),
        )
    return ActionResult(success=True, message="Action completed", data=body)


class ActionExecutor:
    """Performs ``ComponentAction`` calls. Relative endpoints resolve
    against ``base_url``; errors come back as failed results."""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = _TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def execute(self, action: ComponentAction | DismissAction) -> ActionResult:
        if isinstance(action, DismissAction):
            return ActionResult(success=True, message=action.message or "Dismissed")

        logger.info(f"Executing action: {action.method} {action.endpoint}")
        request_kwargs: dict[str, Any] = {}
        if action.payload is not None:
            if action.method == "GET" and isinstance(action.payload, dict):
                request_kwargs["params"] = action.payload
            else:
                request_kwargs["json"] = action.payload

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(action.method, action.endpoint, **request_kwargs)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Action {action.method} {action.endpoint} failed: {e.response.status_code}")
            try:
                body = e.response.json()
            except ValueError:
                body = None
            error = body.get("error") if isinstance(body, dict) and body.get("error") else e.response.text
            return ActionResult(success=False, error=f"HTTP {e.response.status_code}: {error}")
        except httpx.HTTPError as e:
            logger.error(f"Action {action.method} {action.endpoint} error: {e}", exc_info=True)
            return ActionResult(success=False, error=str(e) or type(e).__name__)

        if not resp.content:
            return ActionResult(success=True, message="Action completed")
        try:
            body = resp.json()
        except ValueError:
            return ActionResult(success=True, message=resp.text)
        return _result_from_body(body)
