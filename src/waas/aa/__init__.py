"""Account abstraction (ERC-4337) support."""

from waas.aa.client import SmartAccountClient
from waas.aa.userop import UserOperation

__all__ = ["SmartAccountClient", "UserOperation"]
