"""Service layer encapsulating business logic for API routers."""

from .agents import (
    AgentAlreadyExistsError,
    AgentService,
    AgentServiceError,
    InactiveAgentError,
    InvalidCredentialsError,
)
from .analytics import AnalyticsService, GroupBy
from .conversations import (
    ConversationService,
    ConversationServiceError,
    ConversationStateError,
    ExportFormat,
    MessageDeliveryError,
    start_idle_monitor,
    stop_idle_monitor,
)
from .job_monitor import JOB_IDLE_MONITOR, JobMonitor
from .pagination import (
    InvalidParameterError,
    PaginatedResult,
    PaginationParams,
    SortOrder,
    paginate,
    shutdown_executor,
)
from .properties import BulkUploadValidationError, PropertyService, PropertyServiceError
from .sessions import ConversationSessionStore, SessionState, get_session_store
from .whatsapp import WhatsAppClient, get_whatsapp_client

__all__ = [
    "AgentAlreadyExistsError",
    "AgentService",
    "AgentServiceError",
    "InactiveAgentError",
    "InvalidCredentialsError",
    "AnalyticsService",
    "GroupBy",
    "ConversationService",
    "ConversationServiceError",
    "ConversationStateError",
    "ExportFormat",
    "MessageDeliveryError",
    "start_idle_monitor",
    "stop_idle_monitor",
    "JOB_IDLE_MONITOR",
    "JobMonitor",
    "InvalidParameterError",
    "PaginatedResult",
    "PaginationParams",
    "SortOrder",
    "paginate",
    "shutdown_executor",
    "BulkUploadValidationError",
    "PropertyService",
    "PropertyServiceError",
    "ConversationSessionStore",
    "SessionState",
    "get_session_store",
    "WhatsAppClient",
    "get_whatsapp_client",
]
