"""Invoice extraction callback and matching endpoints."""
import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from drawdesk.config import get_settings
from drawdesk.db import get_db
from drawdesk.schemas.invoice import (
    ExtractionCallbackPayload,
    MatchCorrectionCreate,
    MatchDecisionRead,
    ProcessingResult,
)
from drawdesk.services import invoice_processing, learning
from drawdesk.services.ai_selection import Disambiguator, get_disambiguator
from drawdesk.utils.errors import error_response

router = APIRouter(prefix="/invoices", tags=["invoices"])


def require_extraction_secret(
    x_extraction_secret: str | None = Header(default=None, alias="X-Extraction-Secret"),
) -> None:
    """Check the shared callback secret when one is configured."""

    expected = get_settings().extraction_callback_secret
    if expected is None:
        return
    if not x_extraction_secret or not hmac.compare_digest(x_extraction_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid extraction callback secret."),
        )


@router.post(
    "/{invoice_id}/extraction-callback",
    response_model=ProcessingResult,
    dependencies=[Depends(require_extraction_secret)],
)
def extraction_callback(
    invoice_id: int,
    payload: ExtractionCallbackPayload,
    db: Session = Depends(get_db),
    disambiguator: Disambiguator | None = Depends(get_disambiguator),
):
    return invoice_processing.process_extraction_result(
        db, invoice_id, payload, disambiguator=disambiguator
    )


@router.post("/{invoice_id}/rerun-matching", response_model=ProcessingResult)
def rerun_matching(
    invoice_id: int,
    db: Session = Depends(get_db),
    disambiguator: Disambiguator | None = Depends(get_disambiguator),
):
    return invoice_processing.rerun_matching(db, invoice_id, disambiguator=disambiguator)


@router.post(
    "/{invoice_id}/correct",
    response_model=MatchDecisionRead,
    status_code=status.HTTP_201_CREATED,
)
def correct_match(
    invoice_id: int,
    payload: MatchCorrectionCreate,
    db: Session = Depends(get_db),
):
    return learning.record_match_correction(db, invoice_id, payload)
