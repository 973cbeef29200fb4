from assignx.schemas.auth import LoginRequest, TokenResponse, MeResponse
from assignx.schemas.projects import ProjectCreate, ProjectOut, StatusHistoryOut, ProgressUpdate, CancelRequest
from assignx.schemas.quotes import QuoteCreate, QuoteOut, QuoteReject, PaymentOrderRequest, PaymentOrderOut, PaymentCapture
from assignx.schemas.assignments import AssignRequest, AssignmentOut, DeclineRequest, ReassignRequest, AvailabilityUpdate
from assignx.schemas.qc import DeliverableRefs, QCDecisionRequest, RevisionRequest, RevisionOut
from assignx.schemas.ledger import LedgerEntryOut, RefundRequest, WalletOut
