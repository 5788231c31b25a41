import enum


class UserRole(str, enum.Enum):
    USER = "user"
    INDIVIDUAL = "individual"
    SALES_PERSON = "sales_person"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class AccountKind(str, enum.Enum):
    USER = "user"
    VENDOR = "vendor"


class VendorRegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    # Present in vendor records but never matchable; only VERIFIED is.
    APPROVED = "approved"
    REJECTED = "rejected"


class EnquiryStatus(str, enum.Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    EXPIRED = "expired"


class MatchStatus(str, enum.Enum):
    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class MatchPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationEvent(str, enum.Enum):
    NEW_ENQUIRY = "new-enquiry"
    ENQUIRY_UPDATE = "enquiry-update"
