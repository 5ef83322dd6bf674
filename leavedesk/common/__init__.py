"""Common module — shared utilities for LeaveDesk."""

from leavedesk.common.constants import (
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TRANSITIONS,
    AuditAction,
    DurationType,
    HolidayHalf,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    BalanceConsistencyException,
    ConflictError,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Constants / Enums
    "AuditAction",
    "DurationType",
    "HolidayHalf",
    "LeaveStatus",
    "UserRole",
    "TRANSITIONS",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "BalanceConsistencyException",
    "ConflictError",
    "ForbiddenException",
    "InvalidTransitionException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
