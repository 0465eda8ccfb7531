# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Default in-process implementations of the collaborator protocols.

Production deployments swap these for adapters over the identity provider,
object storage and mail gateway. The defaults are complete enough to run the
API locally and to drive the test-suite.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from beartype import beartype

from ..models.evidence import FileRef

logger = logging.getLogger(__name__)

WILDCARD = "*"


class AllowAllPermissions:
    """Permission checker that grants everything."""

    @beartype
    async def has_permission(self, actor: str, resource: str, action: str, scope: str) -> bool:
        """Always allow."""
        return True


class RolePermissionChecker:
    """Capability table: roles grant ``(resource, action)`` pairs, actors hold roles.

    Either element of a grant may be ``"*"``. An actor may optionally be
    limited to a set of scopes (cycle ids); actors without a scope entry are
    unrestricted.
    """

    @beartype
    def __init__(
        self,
        grants: dict[str, set[tuple[str, str]]],
        actor_roles: dict[str, set[str]],
        actor_scopes: dict[str, set[str]] | None = None,
    ) -> None:
        """Initialize with role grants and role membership."""
        self._grants = grants
        self._actor_roles = actor_roles
        self._actor_scopes = actor_scopes or {}

    @beartype
    def grant_role(self, actor: str, role: str) -> None:
        """Add a role to an actor."""
        self._actor_roles.setdefault(actor, set()).add(role)

    @beartype
    async def has_permission(self, actor: str, resource: str, action: str, scope: str) -> bool:
        """Check the capability table for the actor's roles."""
        scopes = self._actor_scopes.get(actor)
        if scopes is not None and scope not in scopes and WILDCARD not in scopes:
            return False

        for role in self._actor_roles.get(actor, set()):
            for granted_resource, granted_action in self._grants.get(role, set()):
                if granted_resource not in (resource, WILDCARD):
                    continue
                if granted_action in (action, WILDCARD):
                    return True
        return False


class InMemoryFileStorage:
    """Content-addressed file storage kept in memory."""

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._files: dict[str, bytes] = {}

    @beartype
    async def put(self, content: bytes) -> FileRef:
        """Store bytes and return a SHA-256 addressed reference."""
        file_id = f"file-{uuid4().hex[:16]}"
        self._files[file_id] = content
        return FileRef(
            file_id=file_id,
            content_hash=hashlib.sha256(content).hexdigest(),
            size_bytes=len(content),
            uploaded_at=datetime.now(timezone.utc),
        )

    @beartype
    async def exists(self, file_ref: FileRef) -> bool:
        """Whether the file id is stored with the same content hash."""
        content = self._files.get(file_ref.file_id)
        if content is None:
            return False
        return hashlib.sha256(content).hexdigest() == file_ref.content_hash


class LoggingNotifier:
    """Notification dispatcher that writes to the log instead of sending mail."""

    @beartype
    async def notify(self, user_id: str, event_type: str, payload: dict[str, Any]) -> None:
        """Log the notification."""
        logger.info("Notify %s: %s %s", user_id, event_type, payload)


class StaticProviderDirectory:
    """Provider routing and reporting lines from static tables."""

    @beartype
    def __init__(
        self,
        providers: dict[tuple[str, str], str] | None = None,
        control_owners: dict[str, str] | None = None,
        managers: dict[str, str] | None = None,
    ) -> None:
        """Initialize routing tables.

        ``providers`` maps ``(control_id, evidence_type)`` to a user, with
        ``(control_id, "*")`` as a per-control fallback. ``control_owners``
        is consulted last.
        """
        self._providers = providers or {}
        self._control_owners = control_owners or {}
        self._managers = managers or {}

    @beartype
    def register_control_owner(self, control_id: str, owner: str) -> None:
        """Route evidence for a control to its owner unless overridden."""
        self._control_owners[control_id] = owner

    @beartype
    async def evidence_provider_for(self, control_id: str, evidence_type: str) -> str | None:
        """Provider for a control's evidence type."""
        return (
            self._providers.get((control_id, evidence_type))
            or self._providers.get((control_id, WILDCARD))
            or self._control_owners.get(control_id)
        )

    @beartype
    async def manager_of(self, user_id: str) -> str | None:
        """Line manager of a user."""
        return self._managers.get(user_id)
