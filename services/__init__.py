from services.roles import (
    AccessDecision,
    AuthorizationService,
    RoleAssignmentStore,
    RoleStatisticsService,
)

__all__ = [
    "AccessDecision",
    "AuthorizationService",
    "RoleAssignmentStore",
    "RoleStatisticsService",
]
