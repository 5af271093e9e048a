from services.roles.assignment_service import RoleAssignmentStore, DUPLICATE_ROLE_MESSAGE
from services.roles.authorization_service import AccessDecision, AuthorizationService
from services.roles.stats_service import RoleStatisticsService

__all__ = [
    "RoleAssignmentStore",
    "DUPLICATE_ROLE_MESSAGE",
    "AccessDecision",
    "AuthorizationService",
    "RoleStatisticsService",
]
