import datetime as dt
import logging
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import (
    commit_or_400,
    get_current_user,
    get_reconciliation_engine,
    require_admin,
    scoped,
)
from closerflow.core.profile_cache import UserProfile
from closerflow.core.reconciliation import ReconciliationEngine
from closerflow.models.product import Product
from closerflow.models.store import Store
from closerflow.services import closing_service, csv_service

router = APIRouter()
logger = logging.getLogger(__name__)

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def _csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(content.encode("utf-8")),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _visible_stores(db: Session, user: UserProfile) -> List[Store]:
    return scoped(db.query(Store), Store, user).order_by(Store.name).all()


async def _read_csv_upload(file: UploadFile) -> bytes:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="O arquivo deve ser CSV (.csv)")
    contents = await file.read()
    if not contents.strip():
        raise HTTPException(status_code=400, detail="Arquivo vazio ou inválido")
    return contents


@router.post("/closings")
async def import_closings(
    file: UploadFile = File(...),
    dry_run: bool = Form(False),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    """
    Import closings from a semicolon-separated CSV file.

    Columns: Data; Código Loja; Valor Esperado; Valor Contado; Observações.
    Invalid rows are reported in ``errors`` and skipped; the valid ones are
    imported together. With ``dry_run`` nothing is written and the parsed
    rows are returned for preview.
    """
    contents = await _read_csv_upload(file)
    stores = _visible_stores(db, user)
    parsed = csv_service.parse_closings_csv(
        contents,
        closing_service.store_map_by_code(stores),
        ambiguous_codes=closing_service.ambiguous_store_codes(stores),
    )
    stores_by_id = {store.id: store for store in stores}

    preview = []
    for row in parsed.rows:
        reconciliation = engine.reconcile(row.expected_value, row.counted_value)
        preview.append(
            {
                "line": row.line,
                "date": row.date.isoformat(),
                "store_code": row.store_code,
                "expected_value": str(row.expected_value),
                "counted_value": str(row.counted_value),
                "difference": str(reconciliation.difference),
                "status": reconciliation.status.value,
                "observations": row.observations,
            }
        )

    if dry_run:
        return {
            "imported": 0,
            "errors": parsed.errors,
            "total_rows": parsed.total_rows,
            "rows": preview,
        }

    for row in parsed.rows:
        db.add(
            closing_service.build_closing(
                engine,
                user,
                stores_by_id[row.store_id],
                closing_date=row.date,
                expected_value=row.expected_value,
                counted_value=row.counted_value,
                observations=row.observations,
            )
        )
    if parsed.rows:
        commit_or_400(db, "Erro ao importar fechamentos")
    logger.info(
        "closings import by user %s: %s imported, %s errors", user.id, len(parsed.rows), len(parsed.errors)
    )
    return {
        "imported": len(parsed.rows),
        "errors": parsed.errors,
        "total_rows": parsed.total_rows,
        "rows": preview,
    }


@router.get("/closings/export")
def export_closings(
    store_id: Optional[int] = Query(None),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    closings = closing_service.list_closings(db, user, store_id=store_id, start_date=start_date, end_date=end_date)
    if not closings:
        raise HTTPException(status_code=404, detail="Nenhum fechamento para exportar")
    filename = f"fechamentos_{dt.datetime.now().strftime('%Y-%m-%d_%H%M%S')}.csv"
    return _csv_response(csv_service.closings_to_csv(closings), filename)


@router.get("/closings/export.xlsx")
def export_closings_xlsx(
    store_id: Optional[int] = Query(None),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    closings = closing_service.list_closings(db, user, store_id=store_id, start_date=start_date, end_date=end_date)
    if not closings:
        raise HTTPException(status_code=404, detail="Nenhum fechamento para exportar")
    return StreamingResponse(
        csv_service.closings_to_xlsx(closings),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": "attachment; filename=relatorio_fechamentos.xlsx"},
    )


@router.get("/closings/template")
def closings_template():
    return _csv_response(csv_service.closings_template(), "modelo_importacao_fechamentos.csv")


@router.post("/products")
async def import_products(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_admin),
):
    """Bulk-create products from ``Nome; Tipo; Loja (Código); Quantidade; Valor Unitário``."""
    contents = await _read_csv_upload(file)
    stores = _visible_stores(db, user)
    if not stores:
        raise HTTPException(status_code=400, detail="Nenhuma loja cadastrada! Cadastre lojas antes de importar produtos.")

    parsed = csv_service.parse_products_csv(contents, stores)
    if not parsed.rows:
        raise HTTPException(
            status_code=400,
            detail={"message": "Nenhum produto válido para importar", "errors": parsed.errors},
        )

    stores_by_id = {store.id: store for store in stores}
    for row in parsed.rows:
        store = stores_by_id[row.store_id]
        db.add(
            Product(
                name=row.name,
                type=row.type,
                store_id=store.id,
                organization_id=user.organization_id if user.organization_id is not None else store.organization_id,
                quantity=row.quantity,
                unit_value=row.unit_value,
            )
        )
    commit_or_400(db, "Erro ao importar produtos")
    logger.info("products import by user %s: %s imported, %s errors", user.id, len(parsed.rows), len(parsed.errors))
    return {"imported": len(parsed.rows), "errors": parsed.errors, "total_rows": parsed.total_rows}


@router.get("/products/export")
def export_products(
    store_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_admin),
):
    query = scoped(db.query(Product), Product, user)
    if store_id:
        query = query.filter(Product.store_id == store_id)
    products = query.order_by(Product.name).all()
    if not products:
        raise HTTPException(status_code=404, detail="Nenhum produto para exportar")
    return _csv_response(csv_service.products_to_csv(products), f"estoque_{dt.date.today().isoformat()}.csv")


@router.get("/products/template")
def products_template():
    return _csv_response(csv_service.products_template(), "modelo_estoque.csv")
