import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, condecimal
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from closerflow.core.database import get_db
from closerflow.core.deps import commit_or_400, get_scoped_or_404, require_admin, scoped
from closerflow.core.money import ZERO, to_amount
from closerflow.core.profile_cache import UserProfile
from closerflow.models.product import Product
from closerflow.models.store import Store

router = APIRouter()
logger = logging.getLogger(__name__)


class ProductBase(BaseModel):
    name: str
    type: str
    store_id: int
    quantity: int = 0
    unit_value: condecimal(max_digits=12, decimal_places=2) = Decimal("0")


class ProductOut(ProductBase):
    id: int
    store_name: Optional[str] = None
    total_value: Decimal

    class Config:
        from_attributes = True


class StockSummary(BaseModel):
    products: int
    total_quantity: int
    total_value: Decimal


def _out(product: Product) -> ProductOut:
    return ProductOut(
        id=product.id,
        name=product.name,
        type=product.type,
        store_id=product.store_id,
        quantity=product.quantity,
        unit_value=product.unit_value,
        store_name=product.store.name if product.store else None,
        total_value=to_amount(product.total_value),
    )


def _filtered(db: Session, user: UserProfile, store_id: Optional[int], q: Optional[str]):
    query = scoped(db.query(Product), Product, user)
    if store_id:
        query = query.filter(Product.store_id == store_id)
    if q:
        qn = q.strip().lower()
        if qn:
            query = query.filter(
                or_(
                    func.lower(Product.name).like(f"%{qn}%"),
                    func.lower(Product.type).like(f"%{qn}%"),
                )
            )
    return query


def _store_or_400(db: Session, store_id: int, user: UserProfile) -> Store:
    store = scoped(db.query(Store), Store, user).filter(Store.id == store_id).first()
    if not store:
        raise HTTPException(status_code=400, detail="Loja não encontrada")
    return store


def _validate(data: ProductBase) -> None:
    if not data.name.strip() or not data.type.strip():
        raise HTTPException(status_code=400, detail="Nome e tipo são obrigatórios")
    if data.quantity < 0 or data.unit_value < 0:
        raise HTTPException(status_code=400, detail="Quantidade e valor não podem ser negativos")


@router.get("/", response_model=List[ProductOut])
def list_products(
    store_id: Optional[int] = Query(None),
    q: Optional[str] = Query(None, description="Search by name or type"),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_admin),
):
    products = _filtered(db, user, store_id, q).options(joinedload(Product.store)).order_by(Product.name).all()
    return [_out(p) for p in products]


@router.get("/summary", response_model=StockSummary)
def stock_summary(
    store_id: Optional[int] = Query(None),
    q: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_admin),
):
    """Quantity and stock value totals for the same filters as the listing"""
    products = _filtered(db, user, store_id, q).all()
    total_value = sum((to_amount(p.total_value) for p in products), ZERO)
    return StockSummary(
        products=len(products),
        total_quantity=sum(p.quantity or 0 for p in products),
        total_value=total_value,
    )


@router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(data: ProductBase, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    _validate(data)
    store = _store_or_400(db, data.store_id, user)
    product = Product(
        name=data.name.strip(),
        type=data.type.strip(),
        store_id=store.id,
        organization_id=user.organization_id if user.organization_id is not None else store.organization_id,
        quantity=data.quantity,
        unit_value=data.unit_value,
    )
    db.add(product)
    commit_or_400(db, "Erro ao cadastrar produto")
    db.refresh(product)
    logger.info("product %s created by user %s", product.id, user.id)
    return _out(product)


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int, data: ProductBase, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)
):
    product = get_scoped_or_404(db, Product, product_id, user, "Produto não encontrado")
    _validate(data)
    store = _store_or_400(db, data.store_id, user)
    product.name = data.name.strip()
    product.type = data.type.strip()
    product.store_id = store.id
    product.quantity = data.quantity
    product.unit_value = data.unit_value
    commit_or_400(db, "Erro ao atualizar produto")
    db.refresh(product)
    logger.info("product %s updated by user %s", product.id, user.id)
    return _out(product)


@router.delete("/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    product = get_scoped_or_404(db, Product, product_id, user, "Produto não encontrado")
    db.delete(product)
    commit_or_400(db, "Erro ao excluir produto")
    logger.info("product %s deleted by user %s", product_id, user.id)
    return {"message": "Produto excluído com sucesso"}
