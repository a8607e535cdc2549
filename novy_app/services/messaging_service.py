import logging
import uuid
from dataclasses import dataclass
from typing import List

from core.exceptions import ForbiddenError, NotFoundError
from core.mapper import ORMMapper
from core.request_context import ActorContext
from models.enums import (
    ApplicationPaymentStatus,
    AuditAction,
    GateReason,
    ResourceType,
)
from models.models import Application, Listing, User
from repos.application_repo import ApplicationRepo
from repos.listing_repo import ListingRepo
from repos.message_repo import MessageRepo
from repos.user_repo import UserRepo
from schemas.schema import ConversationOut, GateDecisionOut, MessageCreate, MessageOut

from .audit_service import AuditService

logger = logging.getLogger(__name__)

GATE_MESSAGES = {
    GateReason.LISTING_NOT_FOUND: "Listing not found",
    GateReason.APPLICATION_NOT_FOUND: "No application connects you with this user on this listing",
    GateReason.NOT_A_PARTY: "You can only message the other party to an application",
    GateReason.PAYMENT_NOT_COMPLETED: "Messaging unlocks once the platform fee has been paid",
}


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: GateReason | None = None
    application_id: uuid.UUID | None = None

    @classmethod
    def deny(cls, reason: GateReason) -> "GateDecision":
        return cls(allowed=False, reason=reason)


class MessagingService:
    def __init__(self, db):
        self.repo: MessageRepo = MessageRepo(db)
        self.listing_repo: ListingRepo = ListingRepo(db)
        self.application_repo: ApplicationRepo = ApplicationRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.audit: AuditService = AuditService(db)
        self.mapper: ORMMapper = ORMMapper()

    async def _find_application(
        self, listing: Listing, sender_id: uuid.UUID, recipient_id: uuid.UUID
    ) -> Application | None:
        if sender_id == listing.user_id:
            applicant_id = recipient_id
        elif recipient_id == listing.user_id:
            applicant_id = sender_id
        else:
            return None

        applications = await self.application_repo.get_by_listing(listing.id)
        candidates = [a for a in applications if a.applicant_id == applicant_id]
        # a paid application wins over later, unpaid ones
        for application in candidates:
            if application.payment_status == ApplicationPaymentStatus.PAID:
                return application
        return candidates[0] if candidates else None

    async def can_message(
        self,
        sender_id: uuid.UUID,
        listing_id: uuid.UUID,
        recipient_id: uuid.UUID,
        application_id: uuid.UUID | None = None,
    ) -> GateDecision:
        """Read-only check; evaluated fresh on every send."""
        listing = await self.listing_repo.get_by_id(listing_id)
        if not listing:
            return GateDecision.deny(GateReason.LISTING_NOT_FOUND)

        if sender_id == recipient_id:
            return GateDecision.deny(GateReason.NOT_A_PARTY)

        if application_id is not None:
            application = await self.application_repo.get_by_id(application_id)
            if not application or application.listing_id != listing.id:
                return GateDecision.deny(GateReason.APPLICATION_NOT_FOUND)
        else:
            if listing.user_id not in {sender_id, recipient_id}:
                return GateDecision.deny(GateReason.NOT_A_PARTY)
            application = await self._find_application(listing, sender_id, recipient_id)
            if not application:
                return GateDecision.deny(GateReason.APPLICATION_NOT_FOUND)

        parties = {application.applicant_id, listing.user_id}
        if sender_id not in parties or recipient_id not in parties:
            return GateDecision.deny(GateReason.NOT_A_PARTY)

        if application.payment_status != ApplicationPaymentStatus.PAID:
            return GateDecision.deny(GateReason.PAYMENT_NOT_COMPLETED)

        return GateDecision(allowed=True, application_id=application.id)

    async def get_gate(
        self, listing_id: uuid.UUID, participant_id: uuid.UUID, current_user: User
    ) -> GateDecisionOut:
        decision = await self.can_message(current_user.id, listing_id, participant_id)
        return GateDecisionOut(
            allowed=decision.allowed,
            reason=decision.reason,
            message=GATE_MESSAGES.get(decision.reason),
        )

    async def send_message(
        self,
        data: MessageCreate,
        current_user: User,
        actor: ActorContext | None = None,
    ) -> MessageOut:
        decision = await self.can_message(
            current_user.id, data.listing_id, data.recipient_id, data.application_id
        )
        if not decision.allowed:
            message = GATE_MESSAGES[decision.reason]
            details = {"reason": decision.reason.value}
            if decision.reason == GateReason.LISTING_NOT_FOUND:
                raise NotFoundError(message, details=details)
            raise ForbiddenError(message, details=details)

        try:
            message = await self.repo.create(
                {
                    "listing_id": data.listing_id,
                    "application_id": decision.application_id,
                    "sender_id": current_user.id,
                    "recipient_id": data.recipient_id,
                    "content": data.content,
                }
            )
            await self.audit.record(
                AuditAction.MESSAGE_SENT,
                ResourceType.MESSAGE,
                message.id,
                user_id=current_user.id,
                metadata={
                    "listing_id": data.listing_id,
                    "application_id": decision.application_id,
                    "recipient_id": data.recipient_id,
                },
                actor=actor,
            )
            await self.repo.db_commit_and_refresh(message)
        except Exception:
            await self.repo.db_rollback()
            raise

        return self.mapper.one(message, MessageOut)

    async def get_conversations(self, current_user: User) -> List[ConversationOut]:
        messages = await self.repo.get_for_user(current_user.id)

        grouped: dict[tuple[uuid.UUID, uuid.UUID], dict] = {}
        for message in messages:
            other = message.recipient_id if message.sender_id == current_user.id else message.sender_id
            key = (message.listing_id, other)
            entry = grouped.get(key)
            if entry is None:
                # newest first, so the first hit is the last message
                entry = grouped[key] = {"last_message": message, "unread_count": 0}
            if message.recipient_id == current_user.id and not message.is_read:
                entry["unread_count"] += 1

        conversations = []
        for (listing_id, participant_id), entry in grouped.items():
            listing = await self.listing_repo.get_by_id(listing_id)
            participant = await self.user_repo.get_by_id(participant_id)
            conversations.append(
                ConversationOut(
                    listing_id=listing_id,
                    listing_title=listing.title if listing else None,
                    participant_id=participant_id,
                    participant_name=participant.full_name if participant else None,
                    last_message=self.mapper.one(entry["last_message"], MessageOut),
                    unread_count=entry["unread_count"],
                )
            )
        return conversations

    async def get_thread(
        self, listing_id: uuid.UUID, participant_id: uuid.UUID, current_user: User
    ) -> List[MessageOut]:
        messages = await self.repo.get_thread(listing_id, current_user.id, participant_id)
        if any(m.recipient_id == current_user.id and not m.is_read for m in messages):
            try:
                await self.repo.mark_read(listing_id, participant_id, current_user.id)
                await self.repo.db_commit()
            except Exception:
                await self.repo.db_rollback()
                raise
        return self.mapper.many(messages, MessageOut)
