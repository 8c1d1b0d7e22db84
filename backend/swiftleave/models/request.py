"""Leave request lifecycle enums."""
import enum


class RequestStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


class ManagerAction(str, enum.Enum):
    approve = "APPROVE"
    deny = "DENY"


class RowType(str, enum.Enum):
    request = "request"
    decision = "decision"


class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# A decision always maps to exactly one audit verb and back.
ACTION_FOR_STATUS = {
    RequestStatus.approved: ManagerAction.approve,
    RequestStatus.rejected: ManagerAction.deny,
}
STATUS_FOR_ACTION = {action: st for st, action in ACTION_FOR_STATUS.items()}

PERMISSION_ONLY_LEAVE_TYPES = ("FN Permission", "AN Permission", "In Between Permission")
