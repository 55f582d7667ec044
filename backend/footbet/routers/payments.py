import logging

from fastapi import APIRouter, Depends, Query, Request, status

from footbet.config_categories import PAYMENT_METHODS, SUBSCRIPTION_PLANS
from footbet.models.payment import PaymentSubmission, PaymentVerificationResponse, VerificationStatus
from footbet.services import audit_service
from footbet.services.auth_service import get_admin_user, get_current_user
from footbet.services.payment_service import payment_service

logger = logging.getLogger("footbet.payments_router")
router = APIRouter(prefix="/api/payments", tags=["payments"])
admin_router = APIRouter(prefix="/api/admin/payments", tags=["admin-payments"])


@router.get("/plans")
async def list_plans():
    return {
        "plans": [{"plan": key, **entry} for key, entry in SUBSCRIPTION_PLANS.items()],
        "methods": list(PAYMENT_METHODS),
    }


@router.post("/verifications", status_code=status.HTTP_201_CREATED, response_model=PaymentVerificationResponse)
async def submit_payment(body: PaymentSubmission, request: Request, user=Depends(get_current_user)):
    user_id = str(user["_id"])
    result = await payment_service.submit(user_id, body)
    await audit_service.log_audit(
        actor_id=user_id,
        target_id=result.id,
        action=audit_service.SUBMIT_PAYMENT,
        metadata={"plan": body.plan, "method": body.method},
        request=request,
    )
    return result


@router.get("/verifications", response_model=list[PaymentVerificationResponse])
async def my_payments(user=Depends(get_current_user)):
    return await payment_service.list_for_user(str(user["_id"]))


@admin_router.get("", response_model=list[PaymentVerificationResponse])
async def list_payments(
    status_filter: VerificationStatus = Query("Pending", alias="status"),
    admin=Depends(get_admin_user),
):
    return await payment_service.list_by_status(status_filter)


@admin_router.post("/{verification_id}/approve", response_model=PaymentVerificationResponse)
async def approve_payment(verification_id: str, request: Request, admin=Depends(get_admin_user)):
    admin_id = str(admin["_id"])
    result = await payment_service.approve(verification_id, admin_id=admin_id)
    await audit_service.log_audit(
        actor_id=admin_id,
        target_id=verification_id,
        action=audit_service.APPROVE_PAYMENT,
        metadata={"user_id": result.user_id, "plan": result.plan},
        request=request,
    )
    return result


@admin_router.post("/{verification_id}/reject", response_model=PaymentVerificationResponse)
async def reject_payment(verification_id: str, request: Request, admin=Depends(get_admin_user)):
    admin_id = str(admin["_id"])
    result = await payment_service.reject(verification_id, admin_id=admin_id)
    await audit_service.log_audit(
        actor_id=admin_id,
        target_id=verification_id,
        action=audit_service.REJECT_PAYMENT,
        metadata={"user_id": result.user_id},
        request=request,
    )
    return result
