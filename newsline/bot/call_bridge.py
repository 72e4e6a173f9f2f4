"""
Call session bridge between the telephony media stream and the voice AI.

One CallSessionBridge owns one phone call from the moment the media-stream
socket connects until teardown. It runs one reader task per socket, so events
from the same socket are handled strictly in arrival order while the two
sockets interleave freely.

Lifecycle:
    INITIALIZING        caller lookup and conversation record started in background
    AWAITING_HANDSHAKE  both sockets connecting; waiting for stream start and
                        session.updated in either order
    ACTIVE              opening turn sent; audio and tool calls relayed
    CLOSING / CLOSED    either socket ended; the other is closed proactively

Usage example:
    telephony = TwilioMediaStream(websocket, call_id)
    realtime = RealtimeSessionClient(api_key, call_id=call_id)
    bridge = CallSessionBridge(call_id, telephony, realtime, dispatcher,
                               backend=backend, caller_number="+15551234567")
    await bridge.run()  # returns once the call is closed
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from newsline.bot.persona import INPUT_TRANSCRIPTION, INSTRUCTIONS, build_greeting_prompt
from newsline.bot.realtime_api import RealtimeConnectionError, RealtimeSessionClient
from newsline.bot.twilio_stream import StreamNotStartedError, TwilioMediaStream
from newsline.config.constants import (
    AUDIO_FORMAT_PCMU,
    LOGGER_NAME,
    REALTIME_EVENT_AUDIO_DELTA,
    REALTIME_EVENT_AUDIO_DELTA_LEGACY,
    REALTIME_EVENT_BUFFER_COMMITTED,
    REALTIME_EVENT_CONVERSATION_CREATED,
    REALTIME_EVENT_ERROR,
    REALTIME_EVENT_FUNCTION_ARGS_DELTA,
    REALTIME_EVENT_FUNCTION_ARGS_DONE,
    REALTIME_EVENT_INPUT_TRANSCRIPTION_COMPLETED,
    REALTIME_EVENT_OUTPUT_ITEM_ADDED,
    REALTIME_EVENT_PING,
    REALTIME_EVENT_RESPONSE_CREATED,
    REALTIME_EVENT_RESPONSE_DONE,
    REALTIME_EVENT_SESSION_CREATED,
    REALTIME_EVENT_SESSION_UPDATED,
    REALTIME_EVENT_SPEECH_STARTED,
    REALTIME_EVENT_SPEECH_STOPPED,
    REALTIME_EVENT_TRANSCRIPT_DELTA,
    REALTIME_EVENT_TRANSCRIPT_DELTA_LEGACY,
    REALTIME_EVENT_TRANSCRIPT_DONE,
    REALTIME_EVENT_TRANSCRIPT_DONE_LEGACY,
    TELEPHONY_EVENT_CONNECTED,
    TELEPHONY_EVENT_MARK,
    TELEPHONY_EVENT_MEDIA,
    TELEPHONY_EVENT_START,
    TELEPHONY_EVENT_STOP,
    TELEPHONY_TRACK_INBOUND,
)
from newsline.config.settings import Settings
from newsline.models.call_session import CallerIdentity, CallSession, CallState, PendingToolCall
from newsline.services.backend_client import BackendClient
from newsline.tools.base import tool_failure
from newsline.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(LOGGER_NAME)

EventHandler = Callable[[Any], Awaitable[None]]

# Fire-and-forget tasks must stay referenced until they finish
_background_tasks: Set[asyncio.Task] = set()


def _spawn(coro, name: str) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def parse_tool_arguments(call_id: str, raw: str) -> Dict[str, Any]:
    """
    Parse accumulated tool-call arguments.

    Anything that is not a JSON object yields an empty argument set; the tool
    then reports its own validation error.
    """
    if not raw or not raw.strip():
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.error(f"[{call_id}] Failed to parse function args: {raw}")
        return {}
    if not isinstance(arguments, dict):
        logger.error(f"[{call_id}] Function args are not an object: {raw}")
        return {}
    return arguments


class CallSessionBridge:
    """Owns both sockets of one call and relays between them."""

    def __init__(
        self,
        call_id: str,
        telephony: TwilioMediaStream,
        realtime: RealtimeSessionClient,
        dispatcher: ToolDispatcher,
        backend: Optional[BackendClient] = None,
        caller_number: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.call_id = call_id
        self.session = CallSession(call_id=call_id, caller_number=caller_number)
        self.telephony = telephony
        self.realtime = realtime
        self.dispatcher = dispatcher
        self.backend = backend
        self.settings = settings or Settings()

        self._closed = asyncio.Event()
        self._session_configured = False
        self._telephony_task: Optional[asyncio.Task] = None
        self._realtime_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._greeting_task: Optional[asyncio.Task] = None
        self._tool_task: Optional[asyncio.Task] = None
        self._identity_task: Optional[asyncio.Task] = None
        self._conversation_task: Optional[asyncio.Task] = None
        self._transcript_task: Optional[asyncio.Task] = None
        self._transcripts: asyncio.Queue = asyncio.Queue()

        self._telephony_handlers: Dict[str, EventHandler] = {
            TELEPHONY_EVENT_CONNECTED: self._on_connected,
            TELEPHONY_EVENT_START: self._on_stream_start,
            TELEPHONY_EVENT_MEDIA: self._on_media,
            TELEPHONY_EVENT_STOP: self._on_stop,
            TELEPHONY_EVENT_MARK: self._on_mark,
        }
        self._realtime_handlers: Dict[str, EventHandler] = {
            REALTIME_EVENT_SESSION_CREATED: self._on_session_created,
            REALTIME_EVENT_CONVERSATION_CREATED: self._on_session_created,
            REALTIME_EVENT_SESSION_UPDATED: self._on_session_updated,
            REALTIME_EVENT_RESPONSE_CREATED: self._on_response_created,
            REALTIME_EVENT_RESPONSE_DONE: self._on_response_done,
            REALTIME_EVENT_OUTPUT_ITEM_ADDED: self._on_output_item_added,
            REALTIME_EVENT_AUDIO_DELTA: self._on_audio_delta,
            REALTIME_EVENT_AUDIO_DELTA_LEGACY: self._on_audio_delta,
            REALTIME_EVENT_TRANSCRIPT_DELTA: self._on_transcript_delta,
            REALTIME_EVENT_TRANSCRIPT_DELTA_LEGACY: self._on_transcript_delta,
            REALTIME_EVENT_TRANSCRIPT_DONE: self._on_transcript_done,
            REALTIME_EVENT_TRANSCRIPT_DONE_LEGACY: self._on_transcript_done,
            REALTIME_EVENT_FUNCTION_ARGS_DELTA: self._on_function_args_delta,
            REALTIME_EVENT_FUNCTION_ARGS_DONE: self._on_function_args_done,
            REALTIME_EVENT_SPEECH_STARTED: self._on_speech_started,
            REALTIME_EVENT_SPEECH_STOPPED: self._on_speech_stopped,
            REALTIME_EVENT_BUFFER_COMMITTED: self._on_buffer_committed,
            REALTIME_EVENT_INPUT_TRANSCRIPTION_COMPLETED: self._on_input_transcription,
            REALTIME_EVENT_ERROR: self._on_error,
            REALTIME_EVENT_PING: self._on_ping,
        }

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    async def run(self) -> None:
        """
        Drive the call until either socket ends.

        The telephony socket is connected first because the provider starts
        sending as soon as it is accepted; the voice-AI socket follows.
        """
        logger.info(
            f"[{self.call_id}] Starting call bridge (caller: {self.session.caller_number or 'unknown'})"
        )
        self._start_collaborators()

        try:
            try:
                await self.telephony.connect()
            except Exception as e:
                logger.error(f"[{self.call_id}] Failed to accept media stream: {e}")
                await self.close("telephony connection failed")
                return

            self._telephony_task = asyncio.create_task(self._pump_telephony())
            self.session.state = CallState.AWAITING_HANDSHAKE

            try:
                await self.realtime.connect()
            except (RealtimeConnectionError, asyncio.TimeoutError) as e:
                logger.error(f"[{self.call_id}] Voice AI connection failed: {str(e) or 'timeout'}")
                await self.close("voice AI connection failed")
                return

            if self.session.is_closed:
                return

            self._realtime_task = asyncio.create_task(self._pump_realtime())
            self._watchdog_task = asyncio.create_task(self._watch_handshake())
            await self._closed.wait()
        finally:
            if not self.session.is_closed:
                await self.close("bridge stopped")

    # ------------------------------------------------------------------
    # Socket readers
    # ------------------------------------------------------------------
    async def _pump_telephony(self) -> None:
        reason = "telephony stream closed"
        try:
            async for message in self.telephony.messages():
                if self.session.is_closed:
                    break
                handler = self._telephony_handlers.get(message.event)
                if handler is None:
                    logger.debug(f"[{self.call_id}] Ignoring telephony event: {message.event}")
                    continue
                await handler(message)
                if message.event == TELEPHONY_EVENT_STOP:
                    reason = "telephony stream stopped"
                    break
        except Exception as e:
            logger.error(f"[{self.call_id}] Error relaying from telephony: {e}", exc_info=True)
            reason = "telephony relay error"
        finally:
            await self.close(reason)

    async def _pump_realtime(self) -> None:
        reason = "voice AI session closed"
        try:
            async for event in self.realtime.events():
                if self.session.is_closed:
                    break
                handler = self._realtime_handlers.get(event.type)
                if handler is None:
                    logger.debug(f"[{self.call_id}] Unknown: {event.type}")
                    continue
                await handler(event)
        except Exception as e:
            logger.error(f"[{self.call_id}] Error processing message from voice AI: {e}", exc_info=True)
            reason = "voice AI relay error"
        finally:
            await self.close(reason)

    async def _watch_handshake(self) -> None:
        await asyncio.sleep(self.settings.handshake_timeout)
        if self.session.handshake_complete or self.session.is_closed:
            return
        logger.error(
            f"[{self.call_id}] Handshake not complete after {self.settings.handshake_timeout:g}s "
            f"(stream started: {bool(self.session.telephony_stream_handle)}, "
            f"session ready: {self.session.ai_session_ready})"
        )
        await self.close("handshake timeout")

    # ------------------------------------------------------------------
    # Collaborators: identity and transcript
    # ------------------------------------------------------------------
    def _start_collaborators(self) -> None:
        if self.backend is None or not self.session.caller_number:
            logger.info(f"[{self.call_id}] No caller number; proceeding anonymously")
            return
        number = self.session.caller_number
        self._identity_task = _spawn(self._resolve_identity(number), f"identity-{self.call_id}")
        self._conversation_task = _spawn(
            self.backend.create_conversation(number, self.call_id), f"conversation-{self.call_id}"
        )
        self._transcript_task = _spawn(self._write_transcripts(), f"transcripts-{self.call_id}")

    async def _resolve_identity(self, number: str) -> Optional[CallerIdentity]:
        identity = await self.backend.lookup_caller(number)
        if self.session.is_closed:
            return None
        self.session.caller_identity = identity
        if identity:
            logger.info(f"[{self.call_id}] Caller authenticated as @{identity.username}")
        else:
            logger.info(f"[{self.call_id}] Caller not authenticated; public tools only")
        return identity

    async def _caller_identity(self) -> Optional[CallerIdentity]:
        """Caller identity, waiting for the lookup if it is still running."""
        if self._identity_task is not None:
            try:
                await asyncio.shield(self._identity_task)
            except Exception as e:
                logger.error(f"[{self.call_id}] Caller lookup failed, treating caller as anonymous: {e}")
                return None
        return self.session.caller_identity

    def _record_transcript(self, role: str, text: str) -> None:
        self.session.transcript.append({"role": role, "text": text})
        if self._transcript_task is not None:
            self._transcripts.put_nowait((role, text))

    async def _write_transcripts(self) -> None:
        """Store transcript lines in order; the None sentinel ends the conversation."""
        conversation_id = await self._conversation_task
        self.session.conversation_id = conversation_id
        while True:
            item = await self._transcripts.get()
            if item is None:
                break
            if conversation_id is None:
                continue
            role, text = item
            try:
                await self.backend.append_message(self.call_id, conversation_id, role, text)
            except Exception as e:
                logger.error(f"[{self.call_id}] Transcript line dropped: {e}")

        if conversation_id is not None:
            await self.backend.end_conversation(self.call_id, conversation_id)

    # ------------------------------------------------------------------
    # Handshake rendezvous
    # ------------------------------------------------------------------
    async def _maybe_send_greeting(self) -> None:
        """Called by whichever readiness signal arrives second; sends at most once."""
        if not self.session.mark_greeting_sent():
            return
        logger.info(f"[{self.call_id}] Both voice AI session and media stream ready - sending greeting")
        if self._watchdog_task is not None and not self._watchdog_task.done():
            self._watchdog_task.cancel()
        self._greeting_task = asyncio.create_task(self._send_greeting())

    async def _send_greeting(self) -> None:
        identity = await self._caller_identity()
        if self.session.is_closed:
            return
        if await self.realtime.send_user_text(build_greeting_prompt(identity)):
            await self.realtime.request_response()
            logger.info(f"[{self.call_id}] Greeting requested")

    # ------------------------------------------------------------------
    # Telephony events
    # ------------------------------------------------------------------
    async def _on_connected(self, message) -> None:
        logger.info(f"[{self.call_id}] Telephony connected (protocol: {message.protocol})")

    async def _on_stream_start(self, message) -> None:
        self.session.telephony_stream_handle = message.start.stream_sid
        logger.info(f"[{self.call_id}] Stream started (call sid: {message.start.call_sid})")
        await self._maybe_send_greeting()

    async def _on_media(self, message) -> None:
        if message.media.track != TELEPHONY_TRACK_INBOUND:
            return
        if not self.session.ai_session_ready:
            self.session.dropped_inbound_frames += 1
            if self.session.dropped_inbound_frames == 1:
                logger.info(f"[{self.call_id}] Waiting for session.updated before streaming audio...")
            return
        await self.realtime.append_audio(message.media.payload)

    async def _on_stop(self, message) -> None:
        logger.info(f"[{self.call_id}] Telephony stream stopped")

    async def _on_mark(self, message) -> None:
        logger.debug(f"[{self.call_id}] Playback mark: {message.mark.get('name')}")

    # ------------------------------------------------------------------
    # Voice-AI events
    # ------------------------------------------------------------------
    async def _on_session_created(self, event) -> None:
        if self._session_configured:
            return
        self._session_configured = True
        tools = self.dispatcher.realtime_schemas()
        await self.realtime.update_session(
            instructions=INSTRUCTIONS,
            voice=self.settings.voice,
            tools=tools,
            input_transcription=INPUT_TRANSCRIPTION,
        )
        logger.info(
            f"[{self.call_id}] Server-side VAD configured with {len(tools)} tools, "
            f"waiting for session.updated..."
        )

    async def _on_session_updated(self, event) -> None:
        audio_format = event.input_audio_format
        if audio_format is not None and audio_format != AUDIO_FORMAT_PCMU:
            logger.error(
                f"[{self.call_id}] Voice AI reports input format {audio_format}, "
                f"expected {AUDIO_FORMAT_PCMU}; audio stays paused"
            )
            return
        if not self.session.ai_session_ready:
            self.session.ai_session_ready = True
            logger.info(f"[{self.call_id}] Session updated - PCMU format confirmed, audio streaming enabled")
        await self._maybe_send_greeting()

    async def _on_response_created(self, event) -> None:
        logger.info(f"[{self.call_id}] Assistant started speaking")

    async def _on_audio_delta(self, event) -> None:
        try:
            await self.telephony.send_media(event.delta)
        except StreamNotStartedError:
            self.session.dropped_outbound_frames += 1
            if self.session.dropped_outbound_frames == 1:
                logger.warning(f"[{self.call_id}] Assistant audio before stream start - dropping")
            else:
                logger.debug(f"[{self.call_id}] Dropped assistant audio frame")

    async def _on_transcript_delta(self, event) -> None:
        self.session.assistant_transcript_buffer += event.delta

    async def _on_transcript_done(self, event) -> None:
        text = self.session.take_assistant_transcript() or (event.transcript or "")
        if text.strip():
            logger.info(f'[{self.call_id}] Assistant said: "{text}"')
            self._record_transcript("assistant", text)

    async def _on_input_transcription(self, event) -> None:
        if event.transcript.strip():
            logger.info(f'[{self.call_id}] User said: "{event.transcript}"')
            self._record_transcript("user", event.transcript)

    async def _on_speech_started(self, event) -> None:
        logger.info(f"[{self.call_id}] User started speaking (VAD at {event.audio_start_ms}ms)")
        try:
            await self.telephony.clear()
        except StreamNotStartedError:
            logger.debug(f"[{self.call_id}] Barge-in before stream start; nothing to clear")

    async def _on_speech_stopped(self, event) -> None:
        logger.info(f"[{self.call_id}] User stopped speaking")

    async def _on_buffer_committed(self, event) -> None:
        logger.debug(f"[{self.call_id}] Audio buffer committed ({event.item_id or 'no item_id'})")

    async def _on_error(self, event) -> None:
        error = event.error
        logger.error(
            f"[{self.call_id}] Voice AI error: type={error.type or 'unknown'} "
            f"code={error.code or 'unknown'} message={error.message or 'none'} "
            f"event_id={event.event_id or 'none'}"
        )

    async def _on_ping(self, event) -> None:
        pass

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------
    async def _on_output_item_added(self, event) -> None:
        if not event.is_function_call:
            return
        item_call_id = event.item.get("call_id")
        pending = self.session.pending_tool_call
        if pending is not None:
            logger.error(
                f"[{self.call_id}] Tool call {item_call_id} started while "
                f"{pending.call_id} is pending - ignoring"
            )
            return
        self.session.pending_tool_call = PendingToolCall(
            call_id=item_call_id or "", name=event.item.get("name")
        )
        logger.debug(f"[{self.call_id}] Tool call opened: {event.item.get('name')} ({item_call_id})")

    async def _on_function_args_delta(self, event) -> None:
        pending = self.session.pending_tool_call
        if pending is None:
            pending = PendingToolCall(call_id=event.call_id or "")
            self.session.pending_tool_call = pending
        elif pending.dispatched:
            logger.warning(f"[{self.call_id}] Argument fragment after dispatch - ignoring")
            return
        elif event.call_id and pending.call_id and event.call_id != pending.call_id:
            logger.warning(
                f"[{self.call_id}] Argument fragment for {event.call_id} while "
                f"{pending.call_id} is pending - ignoring"
            )
            return
        if not pending.call_id and event.call_id:
            pending.call_id = event.call_id
        pending.append(event.delta)

    async def _on_function_args_done(self, event) -> None:
        pending = self.session.pending_tool_call
        if pending is None:
            pending = PendingToolCall(call_id=event.call_id)
            self.session.pending_tool_call = pending
        elif pending.dispatched or (pending.call_id and pending.call_id != event.call_id):
            logger.error(
                f"[{self.call_id}] Tool call {event.call_id} completed while "
                f"{pending.call_id} is pending - ignoring"
            )
            return

        pending.call_id = event.call_id
        pending.name = event.name
        pending.finished = True
        if not pending.arguments and event.arguments:
            pending.arguments = event.arguments
        logger.info(f"[{self.call_id}] Function call requested: {event.name}")
        logger.info(f"[{self.call_id}]    Arguments: {pending.arguments}")

    async def _on_response_done(self, event) -> None:
        pending = self.session.pending_tool_call
        if pending is None or pending.dispatched:
            logger.info(f"[{self.call_id}] Assistant finished speaking - listening for user...")
            return

        status = event.response.get("status")
        if status == "cancelled" or not pending.complete:
            # The turn ended before the arguments were complete; never dispatch a partial call
            logger.warning(
                f"[{self.call_id}] Response ended ({status or 'no status'}) with unfinished tool call "
                f"{pending.call_id or '?'} ({pending.name or 'unnamed'}, "
                f"{len(pending.arguments)} argument chars) - dropping"
            )
            self.session.pending_tool_call = None
            return

        pending.dispatched = True
        self._tool_task = _spawn(self._run_tool_call(pending), f"tool-{self.call_id}")

    async def _run_tool_call(self, pending: PendingToolCall) -> None:
        """Dispatch one tool call and feed the result back to the voice AI."""
        try:
            arguments = parse_tool_arguments(self.call_id, pending.arguments)
            identity = await self._caller_identity()
            try:
                result = await self.dispatcher.dispatch(
                    self.call_id, pending.name, arguments, identity
                )
            except Exception as e:
                logger.error(f"[{self.call_id}] Tool execution failed: {e}", exc_info=True)
                result = json.dumps(tool_failure(f"Tool failed: {e}"))

            if self.session.is_closed:
                logger.info(
                    f"[{self.call_id}] Call ended during {pending.name}; discarding tool result"
                )
                return

            logger.info(f"[{self.call_id}] Sending tool result back to voice AI")
            if await self.realtime.send_function_output(pending.call_id, result):
                await self.realtime.request_response()
        finally:
            if self.session.pending_tool_call is pending:
                self.session.pending_tool_call = None

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    async def close(self, reason: str = "call ended") -> None:
        """
        Tear the call down. Only the first call has any effect.

        Both sockets are closed, reader tasks other than the caller's own are
        cancelled, and the transcript writer is told to finish. A tool dispatch
        still in flight is left to complete; its result is discarded.
        """
        if self.session.is_closed:
            return
        self.session.state = CallState.CLOSING
        logger.info(f"[{self.call_id}] Closing call: {reason}")

        current = asyncio.current_task()
        for task in (
            self._telephony_task,
            self._realtime_task,
            self._watchdog_task,
            self._greeting_task,
        ):
            if task is not None and task is not current and not task.done():
                task.cancel()

        if self._tool_task is not None and not self._tool_task.done():
            logger.info(f"[{self.call_id}] Tool dispatch still in flight; its result will be discarded")

        leftover = self.session.take_assistant_transcript()
        if leftover.strip():
            self._record_transcript("assistant", leftover)
        if self._transcript_task is not None:
            self._transcripts.put_nowait(None)

        for adapter in (self.telephony, self.realtime):
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"[{self.call_id}] Error closing {type(adapter).__name__}: {e}")

        if self.session.dropped_inbound_frames or self.session.dropped_outbound_frames:
            logger.info(
                f"[{self.call_id}] Dropped frames: {self.session.dropped_inbound_frames} inbound "
                f"before session ready, {self.session.dropped_outbound_frames} outbound before stream start"
            )

        self.session.release()
        self.session.state = CallState.CLOSED
        self._closed.set()
        logger.info(f"[{self.call_id}] Call closed")
