"""
Couple Lifecycle

Forms, activates, edits and dissolves couples.

    invite()  -> Couple(PENDING, token, expiry)
    accept()  -> Couple(ACTIVE), both members' couple_id set
    leave()   -> couple deleted, both members' couple_id cleared

DESIGN DECISION: The two multi-record transitions (activation and
dissolution) are each a single compare-and-set storage call. If two
requests race on the same couple, exactly one commits and the other gets
a ConflictError. They are never retried here: after a lost race the
caller's view of the couple is stale and the request must be re-judged.

Multiple pending invitations toward one invitee are independent. Accepting
one leaves the others pending; accepting a second later fails because the
invitee is no longer free.
"""

import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog

from couple_finance.audit import AuditLogger
from couple_finance.config import InvitationSettings, get_settings
from couple_finance.errors import (
    AlreadyInCoupleError,
    ConcurrentModificationError,
    ConflictError,
    DomainError,
    InvitationExpiredError,
    InvitationNotFoundError,
    NotAuthorizedAccepterError,
    NotInCoupleError,
    PartnerAlreadyCoupledError,
    PartnerNotFoundError,
    RateLimitExceededError,
    SelfInvitationError,
    UserNotFoundError,
)
from couple_finance.models.common import utc_now
from couple_finance.models.couple import (
    COUPLE_NAME_MAX_LENGTH,
    Couple,
    CouplePatch,
    UserAccount,
)
from couple_finance.services.ratelimit import RateLimiter
from couple_finance.services.storage import (
    CoupleStorageInterface,
    MembershipConflictError,
    UserDirectoryInterface,
    VersionConflictError,
)
from couple_finance.validation import RecordValidator


logger = structlog.get_logger(__name__)


def default_couple_name(first: UserAccount, second: UserAccount) -> str:
    """
    "<first> & <second>", with each label cut short enough that the
    name fits a couple record.
    """
    limit = (COUPLE_NAME_MAX_LENGTH - len(" & ")) // 2
    return f"{first.label[:limit].rstrip()} & {second.label[:limit].rstrip()}"


class CoupleLifecycle:
    """Invitation, acceptance, editing and dissolution of couples."""

    def __init__(
        self,
        users: UserDirectoryInterface,
        couples: CoupleStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Optional[Callable[[], str]] = None,
        settings: Optional[InvitationSettings] = None,
        validator: Optional[RecordValidator] = None,
    ):
        self._users = users
        self._couples = couples
        self._audit_logger = audit_logger
        self._rate_limiter = rate_limiter
        self._clock = clock
        self._settings = settings or get_settings().invitation
        self._token_factory = token_factory or self._random_token
        self._validator = validator or RecordValidator(clock)

    def _random_token(self) -> str:
        return secrets.token_hex(self._settings.token_bytes)

    async def _resolve_partner(self, partner: Union[str, UUID]) -> Optional[UserAccount]:
        """Look the partner up by email (anything with an @) or by user id."""
        if isinstance(partner, UUID):
            return await self._users.get_user(partner)

        partner = partner.strip()
        if "@" in partner:
            return await self._users.find_user_by_email(partner)
        try:
            return await self._users.get_user(UUID(partner))
        except ValueError:
            return None

    # =========================================================================
    # INVITE
    # =========================================================================

    async def invite(
        self,
        inviter_id: UUID,
        partner: Union[str, UUID],
        couple_name: Optional[str] = None,
    ) -> Couple:
        """
        Create a pending couple between the inviter and a partner.

        Args:
            inviter_id: The member sending the invitation
            partner: Partner's email address or user id
            couple_name: Defaults to "<inviter> & <partner>"

        Returns:
            The pending couple, carrying the raw invitation token. This is
            the only time the token is handed out.

        Raises:
            RateLimitExceededError: The injected rate limiter refused the call
            UserNotFoundError: The inviter does not exist
            AlreadyInCoupleError: The inviter has an active couple
            PartnerNotFoundError: The partner cannot be resolved
            PartnerAlreadyCoupledError: The partner has an active couple
            SelfInvitationError: The partner is the inviter
        """
        if self._rate_limiter is not None and not self._rate_limiter.allow(inviter_id):
            if self._audit_logger:
                await self._audit_logger.log_rate_limited(inviter_id, "invite")
            raise RateLimitExceededError(f"Too many requests from user {inviter_id}")

        inviter = await self._users.get_user(inviter_id)
        if inviter is None:
            raise UserNotFoundError(f"User not found: {inviter_id}")
        if inviter.couple_id is not None:
            raise AlreadyInCoupleError("You are already in a couple relationship")

        partner_user = await self._resolve_partner(partner)
        if partner_user is None:
            raise PartnerNotFoundError(f"Partner not found: {partner}")
        if partner_user.couple_id is not None:
            raise PartnerAlreadyCoupledError("Partner is already in a couple relationship")
        if partner_user.id == inviter.id:
            raise SelfInvitationError("You cannot invite yourself")

        now = self._clock()
        couple = self._validator.build(
            Couple,
            member_a=inviter.id,
            member_b=partner_user.id,
            couple_name=couple_name or default_couple_name(inviter, partner_user),
            invitation_token=self._token_factory(),
            invitation_expiry=now + timedelta(hours=self._settings.ttl_hours),
            created_at=now,
            updated_at=now,
        )
        couple = await self._couples.create_couple(couple)

        logger.info(
            "couple_invited",
            couple_id=str(couple.id),
            inviter_id=str(inviter.id),
            invitee_id=str(partner_user.id),
        )
        if self._audit_logger:
            await self._audit_logger.log_couple_invited(
                couple_id=couple.id,
                inviter_id=inviter.id,
                invitee_id=partner_user.id,
                expires_at=couple.invitation_expiry,
            )
        return couple

    # =========================================================================
    # ACCEPT
    # =========================================================================

    async def accept(self, accepter_id: UUID, token: str) -> Couple:
        """
        Activate the pending couple holding this token.

        Activation, token clearing and both members' couple_id are written
        in one commit. On any failure the couple stays pending.

        Raises:
            InvitationNotFoundError: No pending couple holds the token
            InvitationExpiredError: now is past the invitation expiry
            NotAuthorizedAccepterError: The accepter is not the invitee
            AlreadyInCoupleError: A member joined another couple meanwhile
            ConflictError: The invitation changed while being accepted
        """
        couple = None
        try:
            couple = await self._couples.find_pending_by_token(token)
            if couple is None:
                raise InvitationNotFoundError("Invalid or expired invitation token")

            now = self._clock()
            if not couple.is_invitation_valid(now):
                raise InvitationExpiredError("Invitation has expired")
            if couple.member_b != accepter_id:
                raise NotAuthorizedAccepterError(
                    "You are not authorized to accept this invitation"
                )

            try:
                activated = await self._couples.commit_activation(
                    couple.activated(now),
                    expected_version=couple.version,
                )
            except MembershipConflictError as e:
                raise AlreadyInCoupleError(
                    "A member of this invitation is already in a couple relationship"
                ) from e
            except VersionConflictError as e:
                raise ConflictError("Invitation changed while it was being accepted") from e

        except DomainError as e:
            if self._audit_logger:
                await self._audit_logger.log_accept_rejected(
                    accepter_id=accepter_id,
                    error_code=e.code,
                    couple_id=couple.id if couple else None,
                )
            raise

        logger.info("couple_activated", couple_id=str(activated.id))
        if self._audit_logger:
            await self._audit_logger.log_couple_activated(
                couple_id=activated.id,
                accepter_id=accepter_id,
            )
        return activated

    # =========================================================================
    # LEAVE
    # =========================================================================

    async def leave(self, user_id: UUID) -> None:
        """
        Dissolve the user's couple.

        The couple record is deleted outright. Shared expenses and goals keep
        their couple_id, now pointing at nothing.

        Raises:
            NotInCoupleError: The user has no couple
            ConflictError: The couple changed while being dissolved
        """
        user = await self._users.get_user(user_id)
        if user is None or user.couple_id is None:
            raise NotInCoupleError("You are not in a couple relationship")

        couple = await self._couples.get_couple(user.couple_id)
        if couple is None:
            raise NotInCoupleError("Couple not found")

        try:
            await self._couples.commit_dissolution(couple.id, expected_version=couple.version)
        except VersionConflictError as e:
            raise ConflictError("Couple changed while it was being dissolved") from e

        logger.info("couple_dissolved", couple_id=str(couple.id), user_id=str(user_id))
        if self._audit_logger:
            await self._audit_logger.log_couple_dissolved(
                couple_id=couple.id,
                user_id=user_id,
                partner_id=couple.partner_of(user_id),
            )

    # =========================================================================
    # QUERIES AND EDITS
    # =========================================================================

    async def find_active_couple_of(self, user_id: UUID) -> Optional[Couple]:
        return await self._couples.find_active_couple_of(user_id)

    async def pending_invitations_for(self, user_id: UUID) -> list[Couple]:
        """
        Pending invitations addressed to the user, newest first.

        Expired invitations are included; use Couple.is_invitation_valid()
        to tell them apart.
        """
        return await self._couples.list_pending_for_invitee(user_id)

    async def update_couple(
        self,
        user_id: UUID,
        patch: Union[CouplePatch, dict[str, Any]],
    ) -> Couple:
        """
        Edit the name, budget or settings of the user's active couple.

        Raises:
            ValidationError: The patch names unknown or protected fields
            NotInCoupleError: The user has no active couple
            ConcurrentModificationError: The couple changed meanwhile
        """
        patch = self._validator.parse(CouplePatch, patch)

        couple = await self._couples.find_active_couple_of(user_id)
        if couple is None:
            raise NotInCoupleError("You are not in a couple relationship")

        updated = self._validator.apply_patch(couple, patch)
        updated.updated_at = self._clock()

        try:
            updated = await self._couples.update_couple(updated, expected_version=couple.version)
        except VersionConflictError as e:
            raise ConcurrentModificationError("Couple changed while it was being updated") from e

        fields = sorted(patch.model_fields_set)
        if self._audit_logger:
            await self._audit_logger.log_couple_updated(
                couple_id=couple.id,
                user_id=user_id,
                fields=fields,
            )
        return updated
