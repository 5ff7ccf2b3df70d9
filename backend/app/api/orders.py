"""Order lifecycle API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_auditor, get_db, get_ip_address, get_notifier
from app.api.errors import http_error
from app.config import get_settings
from app.models.order import Order, OrderStatus
from app.models.user import Volunteer
from app.schemas.order import (
    ChallengeProgressResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdateResponse,
    VolunteerStatusUpdate,
)
from app.services.audit import AuditActor, AuditSink
from app.services.errors import LifecycleError
from app.services.ledger import ChallengeLedger
from app.services.notifications import NotificationSink
from app.services.order_reconciler import reconcile_order

router = APIRouter(tags=["orders"])


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, db: Session = Depends(get_db)):
    """Get a single order."""
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.patch("/orders/{order_id}/status", response_model=OrderUpdateResponse)
def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    db: Session = Depends(get_db),
    actor: AuditActor = Depends(get_actor),
    ip_address: str = Depends(get_ip_address),
    notifier: NotificationSink = Depends(get_notifier),
    auditor: AuditSink = Depends(get_auditor),
):
    """Change an order's status (admin) and keep the referral ledger in sync."""
    try:
        order = reconcile_order(
            db,
            order_id,
            new_status=request.status,
            volunteer_id=request.volunteer_id,
            field_updates=request.field_updates(),
            actor=actor,
            ip_address=ip_address,
            notifier=notifier,
            auditor=auditor,
        )
    except LifecycleError as e:
        raise http_error(e)
    return OrderUpdateResponse(order=OrderResponse.model_validate(order))


@router.patch("/volunteer/orders/{order_id}/status", response_model=OrderUpdateResponse)
def update_delivery_status(
    order_id: str,
    request: VolunteerStatusUpdate,
    db: Session = Depends(get_db),
    ip_address: str = Depends(get_ip_address),
    notifier: NotificationSink = Depends(get_notifier),
    auditor: AuditSink = Depends(get_auditor),
):
    """Delivery volunteer marks an order as delivered or unreachable."""
    volunteer = db.query(Volunteer).filter(
        (Volunteer.id == request.volunteer_id) | (Volunteer.volunteer_code.ilike(request.volunteer_id))
    ).first()
    if not volunteer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Volunteer not found")

    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    if order.delivery_volunteer_id != volunteer.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not assigned as the delivery volunteer for this order",
        )

    if order.status == OrderStatus.DELIVERED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This order is already marked as delivered",
        )

    try:
        order = reconcile_order(
            db,
            order_id,
            new_status=request.status,
            actor=AuditActor(id=volunteer.id, email=volunteer.email, name=volunteer.name, role="volunteer"),
            ip_address=ip_address,
            notifier=notifier,
            auditor=auditor,
        )
    except LifecycleError as e:
        raise http_error(e)
    return OrderUpdateResponse(order=OrderResponse.model_validate(order))


@router.get("/volunteers/{volunteer_id}/progress", response_model=ChallengeProgressResponse)
def get_volunteer_progress(volunteer_id: str, db: Session = Depends(get_db)):
    """Get a volunteer's challenge progress (zero until their first active order)."""
    volunteer = db.get(Volunteer, volunteer_id)
    if not volunteer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Volunteer not found")

    progress = ChallengeLedger().get_progress(db, volunteer_id)
    confirmed = progress.confirmed_units if progress else 0
    goal = progress.goal if progress else get_settings().challenge_default_goal
    return ChallengeProgressResponse(
        volunteer_id=volunteer_id,
        confirmed_units=confirmed,
        goal=goal,
        remaining=max(0, goal - confirmed),
        completed=confirmed >= goal,
    )
