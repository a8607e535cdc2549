from enum import Enum


class RoleName(str, Enum):
    TENANT = "tenant"
    OWNER = "owner"
    ADMIN = "admin"


class ListingType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"


class ListingStatus(str, Enum):
    DRAFT = "draft"
    PENDING_AUTHORIZATION = "pending_authorization"
    ACTIVE = "active"
    TRANSFERRED = "transferred"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


ADMIN_SETTABLE_LISTING_STATUSES = {
    ListingStatus.TRANSFERRED,
    ListingStatus.EXPIRED,
    ListingStatus.CANCELLED,
}


class AuthorizationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class AuthorizationDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


# statuses that still block a second application to the same listing
LIVE_APPLICATION_STATUSES = {
    ApplicationStatus.PENDING,
    ApplicationStatus.UNDER_REVIEW,
    ApplicationStatus.APPROVED,
}

REVIEW_TRANSITIONS = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.UNDER_REVIEW: {
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
    },
}

WITHDRAWABLE_STATUSES = {ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW}


class ApplicationPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditAction(str, Enum):
    OWNER_APPROVAL = "owner_approval"
    OWNER_REJECTION = "owner_rejection"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    TOS_ACCEPTED = "tos_accepted"
    DISCLAIMER_ACCEPTED = "disclaimer_accepted"
    MESSAGE_SENT = "message_sent"
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_REVIEWED = "application_reviewed"
    APPLICATION_WITHDRAWN = "application_withdrawn"
    LISTING_CREATED = "listing_created"
    LISTING_STATUS_CHANGED = "listing_status_changed"


class ResourceType(str, Enum):
    LISTING = "listing"
    OWNER_AUTHORIZATION = "owner_authorization"
    APPLICATION = "application"
    PAYMENT = "payment"
    MESSAGE = "message"


class GateReason(str, Enum):
    LISTING_NOT_FOUND = "listing_not_found"
    APPLICATION_NOT_FOUND = "application_not_found"
    NOT_A_PARTY = "not_a_party"
    PAYMENT_NOT_COMPLETED = "payment_not_completed"
