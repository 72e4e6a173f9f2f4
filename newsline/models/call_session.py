"""
Per-call state for the call session bridge.

A CallSession is owned by exactly one CallSessionBridge for the call's lifetime.
The CallRegistry is the only process-wide structure: it remembers callers admitted
by the call-setup webhook until their media stream connects, and maps active
call ids to their bridge so inbound sockets can be routed.
"""

import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from newsline.config.constants import DEFAULT_ADMISSION_TTL


class CallState(str, Enum):
    """Lifecycle of one call session."""

    INITIALIZING = "initializing"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class LikedPost(BaseModel):
    id: Optional[str] = None
    text: str = ""
    author_username: Optional[str] = None
    author_name: Optional[str] = None


class FollowedAccount(BaseModel):
    id: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None


class CallerIdentity(BaseModel):
    """Authorization context of a caller who linked their platform account."""

    access_token: str
    platform_user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    following: List[FollowedAccount] = Field(default_factory=list)
    liked_posts: List[LikedPost] = Field(default_factory=list)

    @property
    def spoken_name(self) -> str:
        return self.display_name or self.username or "there"


def generate_call_id() -> str:
    """Opaque call identifier from a cryptographically strong source."""
    return f"call_{secrets.token_hex(16)}"


@dataclass
class PendingToolCall:
    """A tool call being assembled from argument fragments."""

    call_id: str
    name: Optional[str] = None
    arguments: str = ""
    finished: bool = False  # arguments "done" event received
    dispatched: bool = False

    def append(self, fragment: str) -> None:
        self.arguments += fragment

    @property
    def complete(self) -> bool:
        return bool(self.finished and self.name and self.call_id)


@dataclass
class CallSession:
    """State of one phone call, from media-stream connect to teardown."""

    call_id: str
    caller_number: Optional[str] = None
    caller_identity: Optional[CallerIdentity] = None
    telephony_stream_handle: Optional[str] = None
    ai_session_ready: bool = False
    greeting_sent: bool = False
    pending_tool_call: Optional[PendingToolCall] = None
    assistant_transcript_buffer: str = ""
    conversation_id: Optional[str] = None
    state: CallState = CallState.INITIALIZING
    dropped_inbound_frames: int = 0
    dropped_outbound_frames: int = 0
    transcript: List[Dict[str, str]] = field(default_factory=list)

    @property
    def handshake_complete(self) -> bool:
        return bool(self.telephony_stream_handle) and self.ai_session_ready

    @property
    def is_closed(self) -> bool:
        return self.state in (CallState.CLOSING, CallState.CLOSED)

    def mark_greeting_sent(self) -> bool:
        """
        Claim the opening turn if both sides are ready and it was not sent yet.

        Returns:
            bool: True for the single caller that should send the opening turn
        """
        if self.greeting_sent or not self.handshake_complete or self.is_closed:
            return False
        self.greeting_sent = True
        self.state = CallState.ACTIVE
        return True

    def take_assistant_transcript(self) -> str:
        """Return the buffered assistant transcript and clear the buffer."""
        text = self.assistant_transcript_buffer
        self.assistant_transcript_buffer = ""
        return text

    def release(self) -> None:
        """Drop every per-call resource held by the session."""
        self.caller_identity = None
        self.pending_tool_call = None
        self.assistant_transcript_buffer = ""


@dataclass
class Admission:
    """A caller admitted by the call-setup webhook whose stream has not connected yet."""

    caller_number: str
    call_sid: Optional[str]
    admitted_at: float


class CallRegistry:
    """
    Registry of admitted callers and active call sessions.

    Only the event loop mutates the registry, and each bridge only touches its
    own call id, so no locking is needed. Admissions whose media stream never
    connects are dropped when the provider reports the call ended, or once they
    are older than ``admission_ttl``.
    """

    def __init__(
        self,
        admission_ttl: float = DEFAULT_ADMISSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.admission_ttl = admission_ttl
        self._clock = clock
        self.admitted_callers: Dict[str, Admission] = {}
        self.active_calls: Dict[str, Any] = {}

    def admit(self, caller_number: str, call_sid: Optional[str] = None) -> str:
        """
        Admit an inbound call and allocate its identifier.

        Args:
            caller_number: Phone number of the caller
            call_sid: Provider call identifier, used to release the admission
                if the call ends before its stream connects

        Returns:
            str: The new call id
        """
        self.prune_admissions()
        call_id = generate_call_id()
        self.admitted_callers[call_id] = Admission(caller_number, call_sid or None, self._clock())
        return call_id

    def claim_caller(self, call_id: str) -> Optional[str]:
        """Remove and return the caller number admitted for a call id."""
        self.prune_admissions()
        admission = self.admitted_callers.pop(call_id, None)
        return admission.caller_number if admission else None

    def release_call_sid(self, call_sid: str) -> Optional[str]:
        """
        Drop the unclaimed admission made for a provider call.

        Returns:
            Optional[str]: The released call id, None if nothing was waiting
        """
        if not call_sid:
            return None
        for call_id, admission in self.admitted_callers.items():
            if admission.call_sid == call_sid:
                del self.admitted_callers[call_id]
                return call_id
        return None

    def prune_admissions(self) -> int:
        """Drop admissions older than the TTL; returns how many were dropped."""
        cutoff = self._clock() - self.admission_ttl
        expired = [cid for cid, a in self.admitted_callers.items() if a.admitted_at <= cutoff]
        for call_id in expired:
            del self.admitted_callers[call_id]
        return len(expired)

    def register(self, call_id: str, bridge: Any) -> None:
        self.active_calls[call_id] = bridge

    def get(self, call_id: str) -> Optional[Any]:
        return self.active_calls.get(call_id)

    def remove(self, call_id: str) -> bool:
        """
        Remove an active call.

        Returns:
            bool: True if the call was registered, False on a repeated removal
        """
        return self.active_calls.pop(call_id, None) is not None

    def __len__(self) -> int:
        return len(self.active_calls)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self.active_calls
