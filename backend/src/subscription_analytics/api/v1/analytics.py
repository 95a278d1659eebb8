"""
Dashboard action endpoints for subscription analytics.

Provides endpoints for:
- GET /v1/analytics/nonce - Issue an action nonce
- POST /v1/analytics/actions/refresh-stats - Metrics snapshot
- POST /v1/analytics/actions/subscriber-table - Long-standing subscribers
- POST /v1/analytics/actions/test-email - Send a test report (admin)
- POST /v1/analytics/actions/test-connection - Probe Stripe (admin)
- POST /v1/analytics/actions/card-order - Save dashboard card ordering
- POST /v1/analytics/actions/customer-invoices - Invoice tallies for a customer
- GET /v1/analytics/settings/card-order - Saved dashboard card ordering
- GET/PUT /v1/analytics/settings/recipients - Report recipients (admin)

Every response uses the ``ActionResponse`` envelope. Auth failures, missing
configuration and Stripe errors are turned into envelopes by the
application's exception handlers.
"""
from typing import Dict

import structlog
from fastapi import APIRouter, Depends

from subscription_analytics.api.deps import get_current_user, get_services, verify_nonce
from subscription_analytics.auth.jwt import jwt_auth
from subscription_analytics.auth.rbac import ensure_permission
from subscription_analytics.schemas.actions import (
    ActionRequest,
    CardOrderRequest,
    CustomerInvoicesRequest,
    NonceResponse,
    RecipientsUpdate,
)
from subscription_analytics.schemas.error import ActionResponse, ErrorCode
from subscription_analytics.services.provider import ServiceProvider

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/analytics")


@router.get("/nonce", response_model=ActionResponse)
async def issue_nonce(current_user: Dict = Depends(get_current_user)) -> ActionResponse:
    """Issue the anti-forgery token the dashboard echoes back on every action."""
    nonce = jwt_auth.create_nonce(current_user["sub"])
    return ActionResponse.ok(
        NonceResponse(nonce=nonce, expires_in=jwt_auth.nonce_expire_minutes * 60).model_dump()
    )


@router.post("/actions/refresh-stats", response_model=ActionResponse)
async def refresh_stats(
    body: ActionRequest,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """
    Dashboard metrics snapshot.

    Served from the cache unless ``force_refresh`` is set. Metrics that could
    not be computed are ``null`` and listed under ``unavailable``.
    """
    verify_nonce(body.nonce, current_user)
    ensure_permission(current_user, "analytics", "refresh" if body.force_refresh else "read")

    snapshot = await services.stats().get_dashboard_stats(force_refresh=body.force_refresh)

    logger.info(
        "stats_served",
        user_id=current_user.get("sub"),
        forced=body.force_refresh,
        unavailable=snapshot.unavailable,
    )
    return ActionResponse.ok(snapshot.model_dump(mode="json"))


@router.post("/actions/subscriber-table", response_model=ActionResponse)
async def subscriber_table(
    body: ActionRequest,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """Long-standing subscribers ranked by the value of their recent invoices."""
    verify_nonce(body.nonce, current_user)
    ensure_permission(current_user, "analytics", "refresh" if body.force_refresh else "read")

    rows = await services.stats().get_subscriber_table(force_refresh=body.force_refresh)
    return ActionResponse.ok([row.model_dump(mode="json") for row in rows])


@router.post("/actions/test-email", response_model=ActionResponse)
async def send_test_email(
    body: ActionRequest,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """Send the analytics report to the configured recipients now."""
    verify_nonce(body.nonce, current_user)
    ensure_permission(current_user, "reports", "send")

    result = await services.reports().send_test_report()

    logger.info("test_email_requested", user_id=current_user.get("sub"), recipients=result.get("to"))
    return ActionResponse.ok({"message": "Test email sent successfully", **result})


@router.post("/actions/test-connection", response_model=ActionResponse)
async def test_connection(
    body: ActionRequest,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """Check that the configured Stripe key can reach the API."""
    verify_nonce(body.nonce, current_user)
    ensure_permission(current_user, "stripe", "test_connection")

    if not await services.stats().test_connectivity():
        return ActionResponse.error("Could not connect to Stripe", ErrorCode.STRIPE_API_ERROR)
    return ActionResponse.ok({"message": "Successfully connected to Stripe"})


@router.post("/actions/card-order", response_model=ActionResponse)
async def save_card_order(
    body: CardOrderRequest,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """Remember the current user's dashboard card ordering."""
    verify_nonce(body.nonce, current_user)
    ensure_permission(current_user, "preferences", "update")

    order = await services.preferences().save_card_order(current_user["sub"], body.order)
    return ActionResponse.ok({"order": order})


@router.post("/actions/customer-invoices", response_model=ActionResponse)
async def customer_invoices(
    body: CustomerInvoicesRequest,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """Invoice counts and paid total for one customer, read from its full history."""
    verify_nonce(body.nonce, current_user)
    ensure_permission(current_user, "analytics", "read")

    summary = await services.analytics().customer_invoice_summary(body.customer_id)
    return ActionResponse.ok(summary.model_dump(mode="json"))


@router.get("/settings/card-order", response_model=ActionResponse)
async def get_card_order(
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    ensure_permission(current_user, "preferences", "read")

    order = await services.preferences().get_card_order(current_user["sub"])
    return ActionResponse.ok({"order": order})


@router.get("/settings/recipients", response_model=ActionResponse)
async def get_recipients(
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    ensure_permission(current_user, "settings", "read")

    preferences = services.preferences()
    raw = await preferences.get_recipients_raw()
    return ActionResponse.ok({"recipients": raw, "addresses": await preferences.get_recipients()})


@router.put("/settings/recipients", response_model=ActionResponse)
async def update_recipients(
    body: RecipientsUpdate,
    current_user: Dict = Depends(get_current_user),
    services: ServiceProvider = Depends(get_services),
) -> ActionResponse:
    """
    Replace the weekly report recipient list.

    Rejects the whole list if any address is invalid.
    """
    ensure_permission(current_user, "settings", "update")

    try:
        addresses = await services.preferences().set_recipients(body.recipients)
    except ValueError as e:
        return ActionResponse.error(str(e), ErrorCode.INVALID_RECIPIENTS)

    logger.info("recipients_settings_saved", user_id=current_user.get("sub"), count=len(addresses))
    return ActionResponse.ok({"recipients": ", ".join(addresses), "addresses": addresses})
