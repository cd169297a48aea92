"""Event emit helpers called by the store's business logic."""

from typing import Any, Dict, Optional

from .models import utcnow
from .router import TriggerRouter


async def emit_workflow_event(router: TriggerRouter, trigger: str, workspace_id: str,
                              data: Optional[Dict[str, Any]] = None) -> int:
    """Route an event stamped with workspaceId and an ISO timestamp."""
    payload = {
        **(data or {}),
        "workspaceId": workspace_id,
        "timestamp": utcnow().isoformat(),
    }
    return await router.route(trigger, workspace_id, payload)


async def emit_order_created(router: TriggerRouter, workspace_id: str, order: Dict[str, Any]) -> int:
    return await emit_workflow_event(router, "order.created", workspace_id, order)


async def emit_order_paid(router: TriggerRouter, workspace_id: str, order: Dict[str, Any]) -> int:
    return await emit_workflow_event(router, "order.paid", workspace_id, order)


async def emit_customer_created(router: TriggerRouter, workspace_id: str,
                                customer: Dict[str, Any]) -> int:
    return await emit_workflow_event(router, "customer.created", workspace_id, customer)


async def emit_customer_tag_added(router: TriggerRouter, workspace_id: str,
                                  customer: Dict[str, Any], tag: str) -> int:
    return await emit_workflow_event(router, "customer.tag_added", workspace_id,
                                     {**customer, "tag": tag})


async def emit_product_low_stock(router: TriggerRouter, workspace_id: str,
                                 product: Dict[str, Any], current_stock: int, threshold: int) -> int:
    return await emit_workflow_event(router, "product.low_stock", workspace_id, {
        **product,
        "currentStock": current_stock,
        "threshold": threshold,
    })


async def emit_subscription_renewed(router: TriggerRouter, workspace_id: str,
                                    subscription: Dict[str, Any]) -> int:
    return await emit_workflow_event(router, "subscription.renewed", workspace_id, subscription)


async def emit_review_created(router: TriggerRouter, workspace_id: str, review: Dict[str, Any]) -> int:
    return await emit_workflow_event(router, "review.created", workspace_id, review)


async def emit_auction_ended(router: TriggerRouter, workspace_id: str, auction: Dict[str, Any],
                             winner_id: Optional[str] = None) -> int:
    return await emit_workflow_event(router, "auction.ended", workspace_id, {
        **auction,
        "winnerId": winner_id,
    })
