"""Expose Pydantic schemas for convenient imports."""

from .agent import AgentProfileUpdate, AgentRead, AgentSettingsUpdate, AgentStats
from .analytics import (
    AnalyticsOverview,
    ConversationAnalytics,
    ConversationTimeBucket,
    ConversationTotals,
    LeadDistribution,
    PropertyAnalytics,
    PropertyTotals,
)
from .auth import (
    AgentLoginRequest,
    AgentRegisterRequest,
    AuthResponse,
    ChangePasswordRequest,
    RefreshTokenRequest,
    TokenResponse,
)
from .common import PaginatedResponse, PaginationMetaSchema
from .conversation import (
    AgentMessageCreate,
    ConversationCloseRequest,
    ConversationDetail,
    ConversationListResponse,
    ConversationSummary,
    LiveSessionSummary,
    MessageRead,
)
from .property import (
    PaymentPlanCreate,
    PaymentPlanRead,
    PropertyBulkUploadRequest,
    PropertyBulkUploadResult,
    PropertyCreate,
    PropertyListResponse,
    PropertyRead,
    PropertyRowError,
    PropertyUpdate,
)

__all__ = [
    "AgentLoginRequest",
    "AgentMessageCreate",
    "AgentProfileUpdate",
    "AgentRead",
    "AgentRegisterRequest",
    "AgentSettingsUpdate",
    "AgentStats",
    "AnalyticsOverview",
    "AuthResponse",
    "ChangePasswordRequest",
    "ConversationAnalytics",
    "ConversationCloseRequest",
    "ConversationDetail",
    "ConversationListResponse",
    "ConversationSummary",
    "ConversationTimeBucket",
    "ConversationTotals",
    "LeadDistribution",
    "LiveSessionSummary",
    "MessageRead",
    "PaginatedResponse",
    "PaginationMetaSchema",
    "PaymentPlanCreate",
    "PaymentPlanRead",
    "PropertyAnalytics",
    "PropertyBulkUploadRequest",
    "PropertyBulkUploadResult",
    "PropertyCreate",
    "PropertyListResponse",
    "PropertyRead",
    "PropertyRowError",
    "PropertyTotals",
    "PropertyUpdate",
    "RefreshTokenRequest",
    "TokenResponse",
]
