"""
api/routes/v1/ledger.py -- Ledger operation routes for the CoilLedger REST API.

Routes:
  POST /invoke        -- run a write operation (create_coil, transfers, updates, scrap_coil, ping)
  POST /query         -- run a read-only operation (get_coil_details, get_coils, check_unique_v5c, get_ecert, ping)
  POST /participants  -- register a participant identity and role (Authority only)

The routes only translate HTTP into Dispatcher calls. Every business rule,
including the check of the operation name, lives in core/. LedgerError
subclasses raised by the dispatcher propagate to the exception handler in
api/main.py, which maps them to status codes.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import OperationRequest, OperationResponse, ParticipantCreate, ParticipantResponse
from auth.dependencies import get_caller, require_authority
from core.config import get_settings
from core.models import CallerContext
from core.operations import Dispatcher
from ledger.participants import ParticipantRegistry

router = APIRouter()


def _invoke_limit() -> str:
    return get_settings().invoke_rate_limit


# ---------------------------------------------------------------------------
# POST /invoke -- write operations
# ---------------------------------------------------------------------------


@router.post("/invoke", response_model=OperationResponse)
@limiter.limit(_invoke_limit)
def invoke(
    request: Request,
    body: OperationRequest,
    caller: CallerContext = Depends(get_caller),
) -> OperationResponse:
    """Apply a lifecycle operation as the authenticated caller."""
    dispatcher: Dispatcher = request.app.state.dispatcher
    payload = dispatcher.invoke(body.function, body.args, caller)
    return OperationResponse.from_payload(body.function, payload)


# ---------------------------------------------------------------------------
# POST /query -- read-only operations
# ---------------------------------------------------------------------------


@router.post("/query", response_model=OperationResponse)
def query(
    request: Request,
    body: OperationRequest,
    caller: CallerContext = Depends(get_caller),
) -> OperationResponse:
    """Run a read-only operation. Results are filtered to what the caller may see."""
    dispatcher: Dispatcher = request.app.state.dispatcher
    payload = dispatcher.query(body.function, body.args, caller)
    return OperationResponse.from_payload(body.function, payload)


# ---------------------------------------------------------------------------
# POST /participants -- register an identity (Authority only)
# ---------------------------------------------------------------------------


@router.post("/participants", response_model=ParticipantResponse, status_code=201)
def register_participant(
    request: Request,
    body: ParticipantCreate,
    caller: CallerContext = Depends(require_authority),
) -> ParticipantResponse:
    """Record the role of an identity so it can receive transfers.

    Re-registering an identity replaces its role and ecert.
    """
    registry = ParticipantRegistry(request.app.state.store)
    participant = registry.register(body.identity, body.role, body.ecert)
    return ParticipantResponse(identity=participant.identity, role=participant.role)
