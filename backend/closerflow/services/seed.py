import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from closerflow.core.config import settings
from closerflow.core.reconciliation import ReconciliationEngine
from closerflow.core.security import hash_password
from closerflow.models.cash_closing import CashClosing
from closerflow.models.organization import Organization
from closerflow.models.store import Store
from closerflow.models.user import User

logger = logging.getLogger(__name__)

DEMO_STORES = [
    ("JC001", "Loja Centro", "Shopping Centro"),
    ("JN002", "Loja Norte", "Shopping Norte"),
    ("JS003", "Loja Sul", "Galeria Sul"),
]
DEMO_USERS = [
    ("admin@demo.com", "Administradora Demo", "administrador"),
    ("gerente@demo.com", "Gerente Demo", "gerente"),
    ("caixa@demo.com", "Funcionária Demo", "funcionaria"),
]
DEMO_PASSWORD = "secret123"


def seed_demo(db: Session):
    if db.query(Organization).filter(Organization.code == "DEMO").first():
        return
    organization = Organization(name="Demo", code="DEMO")
    db.add(organization)
    db.flush()

    stores = []
    for code, name, unit in DEMO_STORES:
        store = Store(name=name, code=code, unit=unit, organization_id=organization.id)
        db.add(store)
        stores.append(store)
    db.flush()

    users = []
    for email, name, role in DEMO_USERS:
        user = User(
            email=email,
            name=name,
            hashed_password=hash_password(DEMO_PASSWORD),
            role=role,
            organization_id=organization.id,
            store_id=stores[0].id,
        )
        db.add(user)
        users.append(user)
    db.flush()

    # A week of closings for the first store, one of them out of tolerance
    engine = ReconciliationEngine(settings.tolerance_limit)
    today = date.today()
    for offset in range(7):
        expected = Decimal("5000.00") + offset * Decimal("125.00")
        counted = expected - (Decimal("35.40") if offset == 3 else Decimal("2.50"))
        closing = CashClosing(
            store_id=stores[0].id,
            organization_id=organization.id,
            user_id=users[-1].id,
            date=today - timedelta(days=offset),
            expected_value=expected,
            counted_value=counted,
            initial_value=Decimal("200.00"),
        )
        engine.apply(closing)
        db.add(closing)
    db.commit()
    logger.info("demo organization seeded (organization_id=%s)", organization.id)
