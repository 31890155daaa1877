"""Local broker between agent sessions and the native browser bridge."""

from .connections import Connection, ConnectionRegistry, Role
from .pending import PendingCall, PendingCallTable
from .ownership import Claim, Decision, OwnershipTable
from .router import RequestRouter, wants_tab
from .lifecycle import LifecycleManager
from .server import Broker, BrokerServer, main

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Role",
    "PendingCall",
    "PendingCallTable",
    "Claim",
    "Decision",
    "OwnershipTable",
    "RequestRouter",
    "wants_tab",
    "LifecycleManager",
    "Broker",
    "BrokerServer",
    "main",
]
