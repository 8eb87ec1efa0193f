"""Caller identity for the order API.

Authentication happens upstream (gateway or BFF); it forwards the verified
identity as headers. Role checks belong to the workflow, so an unknown role
is passed through and rejected there as unauthorized_actor.
"""

from fastapi import Header, HTTPException

from orderflow.domain.order import Actor


async def require_actor(
    x_actor_role: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
) -> Actor:
    """FastAPI dependency that builds the Actor from forwarded identity headers.

    Usage::

        @router.post("/{order_id}/transition")
        async def transition(actor: Actor = Depends(require_actor)):
            ...
    """
    if not x_actor_role or not x_actor_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Role or X-Actor-Id header")
    return Actor(role=x_actor_role.strip().lower(), id=x_actor_id.strip())
