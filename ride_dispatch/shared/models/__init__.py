from ride_dispatch.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    PaginatedResponse,
    PaginationParams,
)

__all__ = ["ErrorResponse", "HealthStatus", "PaginatedResponse", "PaginationParams"]
