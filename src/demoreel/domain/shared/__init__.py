"""Capability interfaces shared by the use cases.

This package is domain-accessible and should not depend on infrastructure code.
"""

from .job_api_protocol import JobApiProtocol
from .payment_network_protocol import PaymentNetworkProtocol
from .wallet_protocol import WalletProtocol

__all__ = ["JobApiProtocol", "PaymentNetworkProtocol", "WalletProtocol"]
