"""Remote action token endpoints (no auth, the token is the authenticator).

  POST /actions/redeem            consume a token and apply its decision
  GET  /actions/validate?token=   read-only token check
  GET  /actions/email?token=      one-click link from approval e-mails (HTML)
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.limiter import limiter
from backoffice.db.session import get_sync_session
from backoffice.schemas.action import RedeemRequest, RedeemResponse, TokenInfo, ValidateResponse
from backoffice.services import action_tokens
from backoffice.services.remote_approval import RedemptionResult, redeem_token

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_info(payload) -> TokenInfo | None:
    if payload is None:
        return None
    return TokenInfo(entity_type=payload.entity_type, entity_id=payload.entity_id, action=payload.action)


def _to_response(result: RedemptionResult) -> RedeemResponse:
    return RedeemResponse(
        valid=result.valid,
        error=result.error,
        error_code=result.error_code,
        token=_token_info(result.payload),
        request_status=result.decision.request_status if result.decision else None,
    )


@router.post(
    "/redeem",
    response_model=RedeemResponse,
    summary="Redeem a remote action token (no auth, rate limited)",
)
@limiter.limit(settings.REDEEM_RATE_LIMIT)
def redeem(
    request: Request,
    body: RedeemRequest,
    db: Annotated[Session, Depends(get_sync_session)],
):
    result = redeem_token(db, body.token, notes=body.notes, channel="link")
    return _to_response(result)


@router.get(
    "/validate",
    response_model=ValidateResponse,
    summary="Check a remote action token without using it",
)
@limiter.limit(settings.REDEEM_RATE_LIMIT)
def validate(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
    token: str = Query(..., max_length=128),
):
    result = action_tokens.validate(db, token)
    return ValidateResponse(
        valid=result.valid,
        error=result.message,
        error_code=result.error.value if result.error else None,
        token=_token_info(result.payload),
    )


# ─── E-mail link: approve or reject without login ───

@router.get(
    "/email",
    response_class=HTMLResponse,
    summary="One-click approval link from e-mail (no auth required)",
)
@limiter.limit(settings.REDEEM_RATE_LIMIT)
def email_link(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
    token: str = Query(..., max_length=128, description="Action token from the e-mail link"),
):
    """Handle a one-click Approve/Reject link and render a confirmation page."""
    result = redeem_token(db, token, channel="link")
    if not result.valid:
        return HTMLResponse(
            content=_html_page("Action Failed", result.error or "This link is no longer valid.", success=False),
            status_code=400,
        )

    action_label = "Approved" if result.payload.action == "approve" else "Rejected"
    return HTMLResponse(
        content=_html_page(
            f"Request {action_label}",
            f"Thank you. The request has been {action_label.lower()} successfully. "
            "You may close this window.",
            success=True,
        ),
        status_code=200,
    )


# ─── HTML helper ───

def _html_page(title: str, message: str, success: bool) -> str:
    color = "#2ecc71" if success else "#e74c3c"
    icon = "&#10003;" if success else "&#10007;"
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
            display: flex; align-items: center; justify-content: center;
            min-height: 100vh; margin: 0; background: #f5f5f5; }}
    .card {{ background: white; border-radius: 8px; padding: 40px 48px;
             box-shadow: 0 2px 12px rgba(0,0,0,0.08); text-align: center;
             max-width: 420px; width: 90%; }}
    .icon {{ font-size: 48px; color: {color}; margin-bottom: 16px; }}
    h1 {{ margin: 0 0 12px; font-size: 24px; color: #1a1a1a; }}
    p {{ color: #555; font-size: 16px; line-height: 1.5; margin: 0; }}
  </style>
</head>
<body>
  <div class="card">
    <div class="icon">{icon}</div>
    <h1>{title}</h1>
    <p>{message}</p>
  </div>
</body>
</html>"""
