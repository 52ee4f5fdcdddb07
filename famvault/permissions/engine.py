"""
Permission Resolution Engine

Single allow/deny decision for (member, resource, action).

Evaluation order (short-circuits on the first Allow):
0. Unknown member or resource, or a resource outside the member's family: Deny
1. Ownership: the member owns the resource -> Allow("owner")
2. Role: admin/responsible reading -> Allow("role:visibility");
   admin for any action -> Allow("role:admin")
3. Delegation: an effective covering permission -> Allow("delegation"),
   otherwise Deny("no-grant")

The member record is re-read on every call; role flags are never cached.
Decisions are not written to the audit log.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from famvault.config import get_settings
from famvault.db import DatabaseConnection
from famvault.errors import NotFoundError
from famvault.permissions import roles
from famvault.permissions.store import ActivePermissionStore
from famvault.permissions.types import Decision, PermissionKind, ResourceRef
from famvault.services.vault.hierarchy import ResourceHierarchyIndex
from famvault.storage import members as member_store
from famvault.utils.clock import Clock, normalize, utcnow

logger = logging.getLogger(__name__)


class PermissionEngine:
    """Central permission evaluation engine"""

    def __init__(
        self,
        db: DatabaseConnection,
        hierarchy: ResourceHierarchyIndex,
        store: ActivePermissionStore,
        clock: Clock = utcnow,
        explain_enabled: Optional[bool] = None,
    ):
        self.db = db
        self.hierarchy = hierarchy
        self.store = store
        self.clock = clock
        self.explain_enabled = (
            get_settings().perms_explain if explain_enabled is None else explain_enabled
        )

    def authorize(
        self,
        actor_id: str,
        ref: ResourceRef,
        action: PermissionKind,
        now: Optional[datetime] = None,
    ) -> Decision:
        """
        Decide whether `actor_id` may perform `action` on `ref`

        Args:
            actor_id: Acting member id
            ref: Resource being accessed
            action: Requested permission kind
            now: Evaluation time for delegation expiry (defaults to the clock)

        Returns:
            Decision with allowed flag and reason
        """
        now = normalize(now or self.clock())

        with self.db.read("load_family_member") as conn:
            actor = member_store.load_family_member(conn, actor_id)
        if actor is None:
            return self._deny(actor_id, ref, action, "unknown-member")

        try:
            resource_family = self.hierarchy.family_of(ref)
            owner_id = self.hierarchy.owner_of(ref)
        except NotFoundError:
            return self._deny(actor_id, ref, action, "unknown-resource")

        # Cross-family access is denied before any other rule, roles included
        if resource_family != actor.family_id:
            return self._deny(actor_id, ref, action, "cross-family")

        if owner_id is not None and owner_id == actor.id:
            return Decision.allow("owner")

        if action == PermissionKind.READ and roles.can_see_all_files(actor):
            return Decision.allow("role:visibility")

        if roles.can_manage_permissions(actor):
            return Decision.allow("role:admin")

        if self.store.is_granted(actor.id, ref, action, now):
            return Decision.allow("delegation")

        return self._deny(actor_id, ref, action, "no-grant")

    def _deny(self, actor_id: str, ref: ResourceRef, action: PermissionKind, reason: str) -> Decision:
        logger.debug(f"Denied {action.value} on {ref} for {actor_id}: {reason}")
        return Decision.deny(reason)

    def explain(
        self,
        actor_id: str,
        ref: ResourceRef,
        action: PermissionKind,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Explain why an action was allowed or denied

        Only enabled when FAMVAULT_PERMS_EXPLAIN=1 is set.

        Returns:
            Dict with explanation:
            - decision: "allow" or "deny"
            - reason: Decision reason code
            - role: Actor's current role
            - owner_id: Resource owner
            - ancestors: Scope chain above the resource
            - matching_permissions: Effective delegated permissions covering it
        """
        if not self.explain_enabled:
            return {
                "error": "Diagnostics disabled. Set FAMVAULT_PERMS_EXPLAIN=1 to enable."
            }

        now = normalize(now or self.clock())
        decision = self.authorize(actor_id, ref, action, now)

        explanation: Dict[str, Any] = {
            "decision": "allow" if decision.allowed else "deny",
            "reason": decision.reason,
            "actor_id": actor_id,
            "resource": str(ref),
            "action": action.value,
        }

        with self.db.read("load_family_member") as conn:
            actor = member_store.load_family_member(conn, actor_id)
        explanation["role"] = actor.role.value if actor else None

        if decision.reason in ("unknown-member", "unknown-resource"):
            return explanation

        explanation["owner_id"] = self.hierarchy.owner_of(ref)
        explanation["ancestors"] = [str(a) for a in self.hierarchy.ancestors_of(ref)]
        explanation["matching_permissions"] = [
            p.id for p in self.store.matching_permissions(actor_id, ref, action, now)
        ]
        return explanation
