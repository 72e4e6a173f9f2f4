"""
Client for the application backend: caller identity and transcript storage.

Every operation is best-effort. Network failures, non-success statuses and bad
payloads are logged and turned into a benign default (anonymous caller, no
conversation id, transcript line skipped); nothing here raises into a call.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from newsline.config.constants import DEFAULT_HTTP_TIMEOUT, LOGGER_NAME
from newsline.models.call_session import CallerIdentity, FollowedAccount, LikedPost

logger = logging.getLogger(LOGGER_NAME)

TRANSCRIPT_ROLES = ("user", "assistant")


class UserAuthResponse(BaseModel):
    """Payload of the backend's phone-number token lookup."""

    authenticated: bool = False
    access_token: Optional[str] = None
    x_user_id: Optional[str] = None
    x_username: Optional[str] = None
    x_name: Optional[str] = None
    following: List[FollowedAccount] = Field(default_factory=list)
    liked_tweets: List[LikedPost] = Field(default_factory=list)
    seeded_at: Optional[str] = None

    def to_identity(self) -> Optional[CallerIdentity]:
        """Caller identity, or None unless the payload carries usable credentials."""
        if not (self.authenticated and self.access_token and self.x_user_id):
            return None
        return CallerIdentity(
            access_token=self.access_token,
            platform_user_id=self.x_user_id,
            username=self.x_username,
            display_name=self.x_name,
            following=self.following,
            liked_posts=self.liked_tweets,
        )


class BackendClient:
    """HTTP client for the identity and transcript endpoints of the backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    async def lookup_caller(self, phone_number: str) -> Optional[CallerIdentity]:
        """
        Resolve a phone number to the caller's linked platform account.

        Args:
            phone_number: Caller phone number as received from telephony

        Returns:
            CallerIdentity if the caller linked an account, otherwise None
        """
        logger.info(f"[UserAuth] Looking up user by phone: {phone_number}")
        try:
            async with self._client() as client:
                response = await client.get(
                    "/api/users/token", params={"phone": phone_number}
                )
            if response.status_code == 404:
                logger.info("[UserAuth] User not found (not authenticated)")
                return None
            if response.status_code != 200:
                logger.warning(f"[UserAuth] Backend returned status {response.status_code}")
                return None
            auth = UserAuthResponse(**response.json())
        except httpx.HTTPError as e:
            logger.error(f"[UserAuth] Failed to get user auth: {e}")
            return None
        except (ValueError, TypeError, ValidationError) as e:
            logger.error(f"[UserAuth] Invalid user auth payload: {e}")
            return None

        identity = auth.to_identity()
        if identity:
            logger.info(f"[UserAuth] User authenticated as @{identity.username}")
        return identity

    async def create_conversation(self, phone_number: str, call_id: str) -> Optional[str]:
        """
        Open a conversation record for a call's transcript.

        Returns:
            The conversation id, or None if the backend did not create one
        """
        payload = {"phone_number": phone_number, "call_id": call_id, "title": "Phone Call"}
        try:
            async with self._client() as client:
                response = await client.post("/api/conversations/", json=payload)
            if not response.is_success:
                logger.warning(f"[{call_id}] Failed to create conversation: {response.status_code}")
                return None
            conversation_id = response.json().get("id")
        except httpx.HTTPError as e:
            logger.error(f"[{call_id}] Error creating conversation: {e}")
            return None
        except (ValueError, AttributeError) as e:
            logger.error(f"[{call_id}] Invalid conversation payload: {e}")
            return None

        if conversation_id is None:
            logger.warning(f"[{call_id}] Conversation response carried no id")
            return None
        logger.info(f"[{call_id}] Conversation created: {conversation_id}")
        return str(conversation_id)

    async def append_message(
        self, call_id: str, conversation_id: str, role: str, text: str
    ) -> bool:
        """
        Store one transcript line.

        Returns:
            bool: True if the backend accepted the line
        """
        if role not in TRANSCRIPT_ROLES:
            raise ValueError(f"Unsupported transcript role: {role}")

        payload: Dict[str, Any] = {
            "role": role,
            "content": text,
            "source": "voice",
            "generate_reply": False,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/api/conversations/{conversation_id}/messages", json=payload
                )
        except httpx.HTTPError as e:
            logger.error(f"[{call_id}] Error saving transcript: {e}")
            return False

        if not response.is_success:
            logger.warning(f"[{call_id}] Transcript rejected ({role}): {response.status_code}")
            return False
        logger.debug(f"[{call_id}] Transcript saved ({role})")
        return True

    async def end_conversation(self, call_id: str, conversation_id: str) -> bool:
        """Mark a call's conversation as ended."""
        payload = {"ended_at": datetime.now(timezone.utc).isoformat()}
        try:
            async with self._client() as client:
                response = await client.patch(
                    f"/api/conversations/{conversation_id}", json=payload
                )
        except httpx.HTTPError as e:
            logger.error(f"[{call_id}] Error ending conversation: {e}")
            return False

        if not response.is_success:
            logger.warning(f"[{call_id}] Failed to end conversation: {response.status_code}")
            return False
        logger.info(f"[{call_id}] Conversation ended")
        return True
