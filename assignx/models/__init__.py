from assignx.models.participant import Participant  # noqa: F401
from assignx.models.worker_profile import WorkerProfile  # noqa: F401
from assignx.models.blacklist import BlacklistEntry  # noqa: F401
from assignx.models.project import Project  # noqa: F401
from assignx.models.status_history import ProjectStatusHistory  # noqa: F401
from assignx.models.quote import Quote  # noqa: F401
from assignx.models.payment_capture import PaymentCapture  # noqa: F401
from assignx.models.assignment import Assignment  # noqa: F401
from assignx.models.deliverable import Deliverable  # noqa: F401
from assignx.models.qc_review import QCReview  # noqa: F401
from assignx.models.revision import Revision  # noqa: F401
from assignx.models.auto_approval_timer import AutoApprovalTimer  # noqa: F401
from assignx.models.ledger_entry import LedgerEntry  # noqa: F401
from assignx.models.settlement_record import SettlementRecord  # noqa: F401
from assignx.models.idempotency_key import IdempotencyKeyRecord  # noqa: F401
from assignx.models.audit_log import AuditLogRecord  # noqa: F401
from assignx.models.notification import Notification  # noqa: F401
from assignx.models.payout_request import PayoutRequest  # noqa: F401
