from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from finforecast.core.deps import get_expander, get_ledger, get_materializer
from finforecast.core.errors import ForecastValidationError
from finforecast.core.ledger import InMemoryLedger
from finforecast.schemas import GenerateDetailOut, GenerateRequest, GenerateResultOut, OccurrencePreviewOut
from finforecast.services.recurrence_service import RecurrenceExpander, RecurrenceMaterializer


router = APIRouter(prefix="/recurring-rules", tags=["recurring"])


@router.get("/{rule_id}/occurrences", response_model=OccurrencePreviewOut)
def preview_occurrences(
    rule_id: str,
    user_id: int = Query(..., gt=0),
    start: date = Query(...),
    end: date = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    ledger: InMemoryLedger = Depends(get_ledger),
    expander: RecurrenceExpander = Depends(get_expander),
):
    rule = ledger.get_rule(user_id, rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="RecurringRule not found")
    try:
        result = expander.preview(rule.model_copy(), start, end, page=page, page_size=page_size)
    except ForecastValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return OccurrencePreviewOut(
        rule_id=rule.id,
        items=result.items,
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
    )


@router.post("/generate", response_model=GenerateResultOut)
def generate_transactions(
    payload: GenerateRequest,
    ledger: InMemoryLedger = Depends(get_ledger),
    materializer: RecurrenceMaterializer = Depends(get_materializer),
):
    # Materialize due occurrences and append them to the user's transactions
    until = payload.until or date.today()
    rules = ledger.rules_for_update(payload.user_id, payload.recurring_rule_id)
    if payload.recurring_rule_id is not None and not rules:
        raise HTTPException(status_code=404, detail="RecurringRule not found")
    # Rules that cannot be expanded come back as skipped details
    result = materializer.materialize_due(rules, until)
    ledger.add_transactions(payload.user_id, result.transactions)
    return GenerateResultOut(
        generated=result.generated,
        skipped=result.skipped,
        details=[
            GenerateDetailOut(
                recurring_id=d.rule_id,
                description=d.description,
                status=d.status,
                dates=d.dates,
                reason=d.reason,
            )
            for d in result.details
        ],
    )
