from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_publisher
from storefront.checkout.order_checkout import OrderCheckout
from storefront.core.errors import InvalidStateError, InvariantError, OrderNotFoundError
from storefront.db.models import Order, Provider

router = APIRouter()

class BeginCheckout(BaseModel):
    provider: str
    provider_reference: Optional[str] = None

class OrderOut(BaseModel):
    order_number: str
    status: str
    transaction_id: Optional[str] = None

class ProvidersOut(BaseModel):
    providers: List[str]
    shipping_delayed: bool
    centili_link: Optional[str] = None

class ValidationOut(BaseModel):
    errors: Dict[int, List[str]]

def _checkout(db: Session, order_number: str, **kwargs) -> OrderCheckout:
    try:
        return OrderCheckout.for_order_number(db, order_number, **kwargs)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvariantError as e:
        raise HTTPException(status_code=422, detail=str(e))

def _order_out(order: Order) -> OrderOut:
    return OrderOut(order_number=order.order_number, status=order.status.value, transaction_id=order.transaction_id)

@router.get("/v1/orders/{order_number}/checkout/providers", response_model=ProvidersOut)
def allowed_providers(
    order_number: str,
    intl: Optional[str] = None,
    country: Optional[str] = Header(default=None, alias="CF-IPCountry"),
    db: Session = Depends(get_db),
):
    checkout = _checkout(db, order_number, country=country, intl=intl == "1")
    providers = checkout.allowed_providers()
    return ProvidersOut(
        providers=sorted(p.value for p in providers),
        shipping_delayed=checkout.is_shipping_delayed(),
        centili_link=checkout.centili_payment_link() if Provider.CENTILI in providers else None,
    )

@router.get("/v1/orders/{order_number}/checkout/validate", response_model=ValidationOut)
def validate(order_number: str, db: Session = Depends(get_db)):
    return ValidationOut(errors=_checkout(db, order_number).validate())

@router.post("/v1/orders/{order_number}/checkout", response_model=OrderOut)
def begin_checkout(
    order_number: str,
    payload: BeginCheckout,
    intl: Optional[str] = None,
    country: Optional[str] = Header(default=None, alias="CF-IPCountry"),
    db: Session = Depends(get_db),
    publisher=Depends(get_publisher),
):
    checkout = _checkout(
        db, order_number,
        provider=payload.provider, provider_reference=payload.provider_reference,
        country=country, intl=intl == "1", publisher=publisher,
    )
    errors = checkout.validate()
    if errors:
        raise HTTPException(status_code=422, detail={"errors": errors})
    try:
        return _order_out(checkout.begin_checkout())
    except InvariantError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.post("/v1/orders/{order_number}/checkout/complete", response_model=OrderOut)
def complete_checkout(order_number: str, db: Session = Depends(get_db), publisher=Depends(get_publisher)):
    checkout = _checkout(db, order_number, publisher=publisher)
    try:
        return _order_out(checkout.complete_checkout())
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

class FailCheckout(BaseModel):
    provider: str

@router.post("/v1/orders/{order_number}/checkout/fail", response_model=OrderOut)
def fail_checkout(order_number: str, payload: FailCheckout, db: Session = Depends(get_db), publisher=Depends(get_publisher)):
    checkout = _checkout(db, order_number, provider=payload.provider, provider_reference="", publisher=publisher)
    try:
        return _order_out(checkout.fail_checkout())
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
