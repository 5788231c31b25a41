"""LeadLink outbound integration clients.

Clients implement ``BaseIntegration``; with ``mock_`` credentials they
fabricate responses locally instead of calling the remote API.
"""

from leadlink.integrations.base import BaseIntegration
from leadlink.integrations.razorpay_client import RazorpayClient

__all__ = [
    "BaseIntegration",
    "RazorpayClient",
]
