from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from venue_inventory.auth import MANAGE_ROLES, STOCK_ROLES, Principal, venue_principal
from venue_inventory.db import get_db
from venue_inventory.dependencies import audit_request
from venue_inventory.schemas import (
    PriceCalculationOut,
    PricingAnalysisRow,
    PricingPolicyIn,
    PricingPolicyOut,
    ProductPriceOut,
)
from venue_inventory.services.pricing_service import (
    PolicyInput,
    apply_suggested_price,
    calculate_price,
    create_policy,
    get_policy,
    pricing_analysis,
    replace_policy,
    venue_currency,
)

router = APIRouter(prefix='/venues/{venue_id}/inventory', tags=['pricing'])
stock_access = venue_principal(*STOCK_ROLES)
manage_access = venue_principal(*MANAGE_ROLES)


def _policy_out(db: Session, policy, venue_id: int) -> PricingPolicyOut:
    out = PricingPolicyOut.model_validate(policy)
    out.currency = venue_currency(db, venue_id=venue_id)
    return out


@router.get('/products/{product_id}/pricing-policy', response_model=PricingPolicyOut)
def read_policy(
    venue_id: int,
    product_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return _policy_out(db, get_policy(db, venue_id=venue_id, product_id=product_id), venue_id)


@router.post('/products/{product_id}/pricing-policy', response_model=PricingPolicyOut, status_code=201)
def create_product_policy(
    venue_id: int,
    product_id: int,
    payload: PricingPolicyIn,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    policy = create_policy(
        db,
        venue_id=venue_id,
        product_id=product_id,
        data=PolicyInput(**payload.model_dump()),
        actor_principal_id=principal.id,
    )
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='PRICING_POLICY_CREATED',
        metadata={'product_id': product_id, 'strategy': policy.pricing_strategy},
    )
    db.commit()
    return _policy_out(db, policy, venue_id)


@router.put('/products/{product_id}/pricing-policy', response_model=PricingPolicyOut)
def replace_product_policy(
    venue_id: int,
    product_id: int,
    payload: PricingPolicyIn,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    policy = replace_policy(
        db,
        venue_id=venue_id,
        product_id=product_id,
        data=PolicyInput(**payload.model_dump()),
        actor_principal_id=principal.id,
    )
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='PRICING_POLICY_REPLACED',
        metadata={'product_id': product_id, 'strategy': policy.pricing_strategy},
    )
    db.commit()
    return _policy_out(db, policy, venue_id)


@router.get('/products/{product_id}/pricing/calculate', response_model=PriceCalculationOut)
def calculate_product_price(
    venue_id: int,
    product_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    result = calculate_price(db, venue_id=venue_id, product_id=product_id)
    db.commit()
    return result


@router.post('/products/{product_id}/pricing/apply-suggested', response_model=ProductPriceOut)
def apply_product_suggested_price(
    venue_id: int,
    product_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    product = apply_suggested_price(db, venue_id=venue_id, product_id=product_id, actor_principal_id=principal.id)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='SUGGESTED_PRICE_APPLIED',
        metadata={'product_id': product_id, 'price': product.price},
    )
    db.commit()
    out = ProductPriceOut.model_validate(product)
    out.currency = venue_currency(db, venue_id=venue_id)
    return out


@router.get('/pricing-analysis', response_model=list[PricingAnalysisRow])
def read_pricing_analysis(
    venue_id: int,
    _: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    return pricing_analysis(db, venue_id=venue_id)
