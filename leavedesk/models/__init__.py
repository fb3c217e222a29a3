# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    user, user_manager, proxy_approver, activity_type, holiday,
    leave_request, request_approval, request_comment, user_balance,
    audit_log, notification
)

# Explicit class exports for cleaner imports
from .user import UserProfile, UserRole, ApprovalLogic
from .user_manager import ManagerRelationship
from .proxy_approver import ProxyAssignment
from .activity_type import ActivityType, ApprovalWorkflow, TimeTrackingMode
from .holiday import Holiday
from .leave_request import LeaveRequest, RequestStatus, HalfDayPeriod
from .request_approval import RequestApproval, ApprovalStatus
from .request_comment import RequestComment
from .user_balance import UserBalance
from .audit_log import AuditLog
from .notification import Notification, NotificationTrigger

__all__ = [
    "UserProfile",
    "UserRole",
    "ApprovalLogic",
    "ManagerRelationship",
    "ProxyAssignment",
    "ActivityType",
    "ApprovalWorkflow",
    "TimeTrackingMode",
    "Holiday",
    "LeaveRequest",
    "RequestStatus",
    "HalfDayPeriod",
    "RequestApproval",
    "ApprovalStatus",
    "RequestComment",
    "UserBalance",
    "AuditLog",
    "Notification",
    "NotificationTrigger",
]
