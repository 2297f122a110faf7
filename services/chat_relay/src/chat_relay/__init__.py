"""Real-time chat relay that restyles nicknames and messages through an LLM."""

from .coordinator import BroadcastCoordinator, ConnectionState
from .exceptions import ChatRelayError, DuplicateConnection, InvalidState, ParticipantNotFound
from .gateway import RateLimitState, TransformationGateway
from .history import HistoryBuffer
from .models import ChatMessage, OutboundEvent, Participant, QuotaSnapshot
from .registry import SessionRegistry
from .runtime import create_coordinator, create_gateway
from .styles import StyleCatalog, load_style_catalog
from .version import __version__

__all__ = [
    "BroadcastCoordinator",
    "ChatMessage",
    "ChatRelayError",
    "ConnectionState",
    "DuplicateConnection",
    "HistoryBuffer",
    "InvalidState",
    "OutboundEvent",
    "Participant",
    "ParticipantNotFound",
    "QuotaSnapshot",
    "RateLimitState",
    "SessionRegistry",
    "StyleCatalog",
    "TransformationGateway",
    "create_coordinator",
    "create_gateway",
    "load_style_catalog",
    "__version__",
]
