"""
Role Statistics Service
Read-only reporting over role assignments of a tenant.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from config.settings import EXPIRATION_WINDOW_DAYS, RECENT_ACTIVITY_DAYS
from database.connection import get_db_session
from database.models import AdvancedPermission, Person, PersonRole, RolePermission
from database.soft_delete import active_roles, not_deleted, not_expired
from utils.clock import Clock, utcnow
from utils.logger import get_logger

logger = get_logger(__name__)


def _with_live_person(query):
    """Restrict a query over PersonRole to persons that are not soft-deleted."""
    return query.join(Person, Person.id == PersonRole.person_id).where(not_deleted(Person))


def _role_row(role: PersonRole, person: Person) -> Dict[str, Any]:
    return {
        "id": role.id,
        "role_type": role.role_type,
        "company_id": role.company_id,
        "valid_until": role.valid_until,
        "person": {
            "id": person.id,
            "first_name": person.first_name,
            "last_name": person.last_name,
            "email": person.email,
        },
    }


class RoleStatisticsService:
    """
    Every report opens its own session, so the complete report can run
    its parts concurrently in worker threads. The parts are independent
    reads; they are not a single consistent snapshot.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = get_db_session,
        clock: Clock = utcnow,
        recent_days: int = RECENT_ACTIVITY_DAYS,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.recent_days = recent_days

    def _read(self, label: str, query_fn: Callable[[Session], Any]) -> Any:
        try:
            with self.session_factory() as session:
                return query_fn(session)
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STATS] Error getting {label}: {e}", exc_info=True)
            raise

    @staticmethod
    def _distribution(session: Session, tenant_id: str) -> Dict[str, int]:
        rows = session.exec(
            _with_live_person(select(PersonRole.role_type, func.count(PersonRole.person_id)))
            .where(PersonRole.tenant_id == tenant_id, *active_roles())
            .group_by(PersonRole.role_type)
        ).all()
        return {role_type: count for role_type, count in rows}

    def get_role_statistics(self, tenant_id: str) -> Dict[str, int]:
        """Active assignments per role type."""
        return self._read("role statistics", lambda session: self._distribution(session, tenant_id))

    def get_detailed_role_statistics(self, tenant_id: str) -> Dict[str, Any]:
        now = self.clock()
        recent_since = now - timedelta(days=self.recent_days)

        def query(session: Session) -> Dict[str, Any]:
            def count(*criteria) -> int:
                return session.exec(
                    _with_live_person(select(func.count(PersonRole.id)))
                    .where(PersonRole.tenant_id == tenant_id, *criteria)
                ).one()

            company_rows = session.exec(
                _with_live_person(
                    select(PersonRole.company_id, PersonRole.role_type, func.count(PersonRole.person_id))
                )
                .where(
                    PersonRole.tenant_id == tenant_id,
                    PersonRole.company_id.is_not(None),
                    *active_roles(),
                )
                .group_by(PersonRole.company_id, PersonRole.role_type)
            ).all()
            companies: Dict[str, Dict[str, int]] = {}
            for company_id, role_type, total in company_rows:
                companies.setdefault(company_id, {})[role_type] = total

            return {
                "role_distribution": self._distribution(session, tenant_id),
                "summary": {
                    "total_active_roles": count(not_expired(now), *active_roles()),
                    "expired_roles": count(PersonRole.valid_until < now, *active_roles()),
                    "inactive_roles": count(PersonRole.is_active.is_(False), not_deleted(PersonRole)),
                    "recent_assignments": count(PersonRole.created_at >= recent_since, *active_roles()),
                },
                "companies_breakdown": companies,
            }

        return self._read("detailed role statistics", query)

    def get_permission_usage_stats(self, tenant_id: str) -> Dict[str, List[Dict[str, Any]]]:
        def query(session: Session) -> Dict[str, List[Dict[str, Any]]]:
            grant_count = func.count(RolePermission.id)
            grants = session.exec(
                select(RolePermission.permission, grant_count)
                .join(PersonRole, PersonRole.id == RolePermission.person_role_id)
                .join(Person, Person.id == PersonRole.person_id)
                .where(
                    PersonRole.tenant_id == tenant_id,
                    RolePermission.is_granted.is_(True),
                    not_deleted(RolePermission),
                    not_deleted(Person),
                    *active_roles(),
                )
                .group_by(RolePermission.permission)
                .order_by(grant_count.desc(), RolePermission.permission)
            ).all()

            advanced_count = func.count(AdvancedPermission.id)
            advanced = session.exec(
                select(AdvancedPermission.resource, AdvancedPermission.action, advanced_count)
                .join(PersonRole, PersonRole.id == AdvancedPermission.person_role_id)
                .join(Person, Person.id == PersonRole.person_id)
                .where(
                    PersonRole.tenant_id == tenant_id,
                    not_deleted(AdvancedPermission),
                    not_deleted(Person),
                    *active_roles(),
                )
                .group_by(AdvancedPermission.resource, AdvancedPermission.action)
                .order_by(advanced_count.desc(), AdvancedPermission.resource, AdvancedPermission.action)
            ).all()

            return {
                "role_permissions": [{"permission": p, "count": c} for p, c in grants],
                "advanced_permissions": [{"resource": r, "action": a, "count": c} for r, a, c in advanced],
            }

        return self._read("permission usage stats", query)

    def get_expiration_stats(self, tenant_id: str, days_ahead: int = EXPIRATION_WINDOW_DAYS) -> Dict[str, Any]:
        """
        Active assignments already expired (valid_until < now) and expiring
        within the window (now <= valid_until <= now + days_ahead).
        """
        now = self.clock()
        horizon = now + timedelta(days=days_ahead)

        def query(session: Session) -> Dict[str, Any]:
            base = (
                select(PersonRole, Person)
                .join(Person, Person.id == PersonRole.person_id)
                .where(PersonRole.tenant_id == tenant_id, not_deleted(Person), *active_roles())
            )
            expired = session.exec(
                base.where(PersonRole.valid_until < now).order_by(PersonRole.valid_until)
            ).all()
            expiring = session.exec(
                base.where(PersonRole.valid_until >= now, PersonRole.valid_until <= horizon)
                .order_by(PersonRole.valid_until)
            ).all()
            return {
                "expired": [_role_row(role, person) for role, person in expired],
                "expiring": [_role_row(role, person) for role, person in expiring],
                "summary": {"expired_count": len(expired), "expiring_count": len(expiring)},
            }

        return self._read("expiration stats", query)

    def get_role_stats_over_time(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
    ) -> Dict[str, Any]:
        """Assignments created and deactivated within [start, end], per role type."""
        def query(session: Session) -> Dict[str, Any]:
            assigned = session.exec(
                _with_live_person(select(PersonRole.role_type, func.count(PersonRole.id)))
                .where(
                    PersonRole.tenant_id == tenant_id,
                    PersonRole.created_at >= start,
                    PersonRole.created_at <= end,
                    not_deleted(PersonRole),
                )
                .group_by(PersonRole.role_type)
            ).all()
            removed = session.exec(
                _with_live_person(select(PersonRole.role_type, func.count(PersonRole.id)))
                .where(
                    PersonRole.tenant_id == tenant_id,
                    PersonRole.is_active.is_(False),
                    PersonRole.updated_at >= start,
                    PersonRole.updated_at <= end,
                    not_deleted(PersonRole),
                )
                .group_by(PersonRole.role_type)
            ).all()
            return {
                "assigned": dict(assigned),
                "removed": dict(removed),
                "period": {"start": start, "end": end},
            }

        return self._read("role stats over time", query)

    async def get_complete_role_report(self, tenant_id: str, days_ahead: Optional[int] = None) -> Dict[str, Any]:
        """All the reports above, read concurrently and merged."""
        now = self.clock()
        overview, permissions, expirations, monthly = await asyncio.gather(
            asyncio.to_thread(self.get_detailed_role_statistics, tenant_id),
            asyncio.to_thread(self.get_permission_usage_stats, tenant_id),
            asyncio.to_thread(
                self.get_expiration_stats, tenant_id,
                EXPIRATION_WINDOW_DAYS if days_ahead is None else days_ahead,
            ),
            asyncio.to_thread(
                self.get_role_stats_over_time, tenant_id,
                now - timedelta(days=self.recent_days), now,
            ),
        )
        logger.info(f"[ROLE_STATS] Generated complete role report for tenant {tenant_id}")
        return {
            "overview": overview,
            "permissions": permissions,
            "expirations": expirations,
            "monthly_activity": monthly,
            "generated_at": now,
        }
