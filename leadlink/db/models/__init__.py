from leadlink.db.models.enquiry import Enquiry, VendorMatch
from leadlink.db.models.payment import Payment
from leadlink.db.models.user import User
from leadlink.db.models.vendor import Vendor

__all__ = [
    "Enquiry",
    "Payment",
    "User",
    "Vendor",
    "VendorMatch",
]
