"""
Transport boundary: the Conversation Relay WebSocket endpoint plus HTTP
control, Twilio voice, health and metrics endpoints, served by aiohttp.

Endpoints:
    GET  /conversation-relay                 WebSocket, one session per connection
    POST /sessions/{call_sid}/context        swap instructions and tool manifest
    POST /sessions/{call_sid}/messages       insert a message into the conversation
    POST /sessions/{call_sid}/outgoing       send a structured message to the call
    POST /call-references/{call_reference}   register parameter data for a call
    POST /outboundCall                       place a call that connects back to this server
    POST /connectConversationRelay           TwiML handing a call to the WebSocket
    POST /twilioStatusCallback               call status, told to the live conversation
    POST /voiceIntelligenceWebhook           transcript added to the caller's ticket
    POST /callRecordingWebhook               recording link added to the caller's ticket
    GET  /sessions/stats                     live session summary
    GET  /health
    GET  /metrics
"""

import asyncio
import json
import signal
import uuid
from typing import Any, Callable, Dict, Mapping, Optional, Set

from aiohttp import WSMsgType, web
from dotenv import load_dotenv
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import structlog

from relay_agent import __version__
from relay_agent.config import AppConfig, load_config, validate_config
from relay_agent.core.assets import AssetLoader
from relay_agent.core.inactivity import InactivityMonitor
from relay_agent.core.response_generator import ResponseGenerator
from relay_agent.core.session_handler import ConversationRelaySession
from relay_agent.core.session_store import ParameterStore, SessionStore
from relay_agent.errors import (
    AssetError,
    BackendError,
    ExternalServiceError,
    SessionNotFoundError,
    ToolCatalogError,
)
from relay_agent.logging_config import configure_logging
from relay_agent.metrics import SESSIONS_ACTIVE
from relay_agent.providers import OpenAIChatBackend, StreamBackend
from relay_agent.services import ServiceNowClient, TwilioClient, VoiceCallClient, conversation_relay_twiml
from relay_agent.services.call_records import (
    recording_download_url,
    recording_notes,
    status_update,
    transcript_notes,
)
from relay_agent.services.voice import public_host
from relay_agent.tools import ToolRegistry, builtin_tools

logger = structlog.get_logger(__name__)

INSERTABLE_ROLES = frozenset({"system", "user", "assistant", "tool"})


class RelayServer:
    """
    Owns the cross-session stores and builds one ConversationRelaySession
    per WebSocket connection.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        backend_factory: Optional[Callable[[], StreamBackend]] = None,
        services: Optional[Dict[str, Any]] = None,
        available_tools: Optional[Mapping[str, Any]] = None,
    ):
        self.config = config
        self.sessions: SessionStore[ConversationRelaySession] = SessionStore()
        server_cfg = config.server
        self.parameters = ParameterStore(
            ttl_seconds=server_cfg.call_reference_ttl_sec,
            max_entries=server_cfg.call_reference_max_entries,
        )
        # parameter data of calls that have hung up, by call SID
        self.ended_calls = ParameterStore(
            ttl_seconds=server_cfg.call_reference_ttl_sec,
            max_entries=server_cfg.call_reference_max_entries,
        )
        self.assets = AssetLoader(config.assets.directory)
        self._backend_factory = backend_factory or (lambda: OpenAIChatBackend(config.llm))
        self._owns_services = services is None
        self.services = services if services is not None else {
            "twilio": TwilioClient(config.twilio),
            "servicenow": ServiceNowClient(config.servicenow),
            "voice": VoiceCallClient(config.twilio),
        }
        self.available_tools = available_tools if available_tools is not None else builtin_tools()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.config.server.ws_path, self._ws_handler)
        app.router.add_post('/sessions/{call_sid}/context', self._context_handler)
        app.router.add_post('/sessions/{call_sid}/messages', self._messages_handler)
        app.router.add_post('/sessions/{call_sid}/outgoing', self._outgoing_handler)
        app.router.add_post('/call-references/{call_reference}', self._call_reference_handler)
        app.router.add_post('/outboundCall', self._outbound_call_handler)
        app.router.add_post('/connectConversationRelay', self._connect_relay_handler)
        app.router.add_post('/twilioStatusCallback', self._status_callback_handler)
        app.router.add_post('/voiceIntelligenceWebhook', self._transcript_webhook_handler)
        app.router.add_post('/callRecordingWebhook', self._recording_webhook_handler)
        app.router.add_get('/sessions/stats', self._sessions_stats_handler)
        app.router.add_get('/health', self._health_handler)
        app.router.add_get('/metrics', self._metrics_handler)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_cleanup(self, app: web.Application) -> None:
        if not self._owns_services:
            return
        for client in self.services.values():
            await client.close()

    # ------------------------------------------------------------------
    # WebSocket
    # ------------------------------------------------------------------

    def create_session(self, backend: StreamBackend, send) -> ConversationRelaySession:
        """
        Build a session with the default instructions and tool manifest.

        Raises:
            AssetError: If the default assets cannot be loaded
            ToolCatalogError: If the default manifest names unknown tools
        """
        instructions, catalog = self.assets.load(
            self.config.assets.context_file,
            self.config.assets.tool_manifest_file,
        )
        registry = ToolRegistry.from_catalog(catalog, self.available_tools)
        generator = ResponseGenerator(
            backend, registry, instructions, max_follow_ups=self.config.llm.max_follow_ups,
        )
        monitor = InactivityMonitor(
            reminder_seconds=self.config.inactivity.reminder_seconds,
            max_retries=self.config.inactivity.max_retries,
            poll_interval=self.config.inactivity.poll_interval_sec,
        )
        return ConversationRelaySession(
            generator,
            monitor,
            send,
            session_id=str(uuid.uuid4()),
            parameter_lookup=self.parameters.pop,
            available_tools=self.available_tools,
            tool_config=self.config.tools,
            services=self.services,
        )

    async def _ws_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        send_lock = asyncio.Lock()

        async def send(message: Dict[str, Any]) -> None:
            async with send_lock:
                if ws.closed:
                    logger.debug("WebSocket closed; outbound message dropped", type=message.get("type"))
                    return
                await ws.send_json(message)

        backend = self._backend_factory()
        try:
            session = self.create_session(backend, send)
        except (AssetError, ToolCatalogError) as e:
            logger.error("Cannot start session", error=str(e))
            await backend.close()
            await ws.close(message=b"session setup failed")
            return ws

        SESSIONS_ACTIVE.inc()
        tasks: Set[asyncio.Task] = set()
        logger.info("Conversation Relay connection opened", session_id=session.context.session_id, remote=request.remote)
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._dispatch(session, msg.data, tasks)
                elif msg.type == WSMsgType.ERROR:
                    logger.error("WebSocket error", error=str(ws.exception()))
                    break
        finally:
            session.cleanup()
            for task in list(tasks):
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if session.call_sid:
                self.sessions.remove(session.call_sid, session)
                if session.context.parameter_data:
                    self.ended_calls.put(session.call_sid, session.context.parameter_data)
            await backend.close()
            SESSIONS_ACTIVE.dec()
            logger.info("Conversation Relay connection closed", call_sid=session.call_sid)
        return ws

    async def _dispatch(self, session: ConversationRelaySession, raw: str, tasks: Set[asyncio.Task]) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Malformed JSON frame ignored", error=e.msg)
            return
        if not isinstance(message, dict):
            logger.warning("Non-object frame ignored", frame_type=type(message).__name__)
            return

        if message.get("type") == "prompt":
            # generation runs alongside the read loop so interrupts are seen mid-stream
            task = asyncio.create_task(self._run_prompt(session, message))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
            return

        was_initialized = session.initialized
        await session.handle_message(message)
        if not was_initialized and session.initialized and session.call_sid:
            self.sessions.add(session.call_sid, session)

    async def _run_prompt(self, session: ConversationRelaySession, message: Dict[str, Any]) -> None:
        try:
            await session.handle_message(message)
        except BackendError as e:
            logger.error("Generation failed for prompt", call_sid=session.call_sid, error=str(e), status=e.status)
        except Exception as e:
            logger.error("Prompt handling failed", call_sid=session.call_sid, error=str(e), exc_info=True)

    # ------------------------------------------------------------------
    # HTTP control endpoints
    # ------------------------------------------------------------------

    def _get_session(self, call_sid: str) -> ConversationRelaySession:
        session = self.sessions.get(call_sid)
        if session is None:
            raise SessionNotFoundError(f"No active session for call {call_sid}")
        return session

    @staticmethod
    async def _read_json(request: web.Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except json.JSONDecodeError as e:
            raise ValueError(f"Request body is not valid JSON: {e.msg}") from e
        if not isinstance(body, dict):
            raise ValueError("Request body must be a JSON object")
        return body

    async def _context_handler(self, request: web.Request) -> web.Response:
        """Reconfigure a live session from asset files; the old setup stays on failure."""
        call_sid = request.match_info['call_sid']
        try:
            session = self._get_session(call_sid)
            body = await self._read_json(request)
            context_file = body.get("contextFile") or self.config.assets.context_file
            manifest_file = body.get("toolManifestFile") or self.config.assets.tool_manifest_file
            instructions, catalog = self.assets.load(context_file, manifest_file)
            await session.reconfigure(instructions, catalog)
        except SessionNotFoundError as e:
            return web.json_response({"ok": False, "error": str(e)}, status=404)
        except (ValueError, AssetError, ToolCatalogError) as e:
            logger.warning("Reconfigure rejected", call_sid=call_sid, error=str(e))
            return web.json_response({"ok": False, "error": str(e)}, status=400)
        return web.json_response({"ok": True, "tools": session.generator.registry.list_tools()})

    async def _messages_handler(self, request: web.Request) -> web.Response:
        call_sid = request.match_info['call_sid']
        try:
            session = self._get_session(call_sid)
            body = await self._read_json(request)
            role = body.get("role")
            content = body.get("content")
            if role not in INSERTABLE_ROLES:
                raise ValueError(f"Unsupported role: {role}")
            if not isinstance(content, str):
                raise ValueError("'content' must be a string")
            session.insert_message(role, content)
        except SessionNotFoundError as e:
            return web.json_response({"ok": False, "error": str(e)}, status=404)
        except ValueError as e:
            return web.json_response({"ok": False, "error": str(e)}, status=400)
        return web.json_response({"ok": True})

    async def _outgoing_handler(self, request: web.Request) -> web.Response:
        call_sid = request.match_info['call_sid']
        try:
            session = self._get_session(call_sid)
            body = await self._read_json(request)
            sent = await session.outgoing_message(body)
        except SessionNotFoundError as e:
            return web.json_response({"ok": False, "error": str(e)}, status=404)
        except ValueError as e:
            return web.json_response({"ok": False, "error": str(e)}, status=400)
        return web.json_response({"ok": True, "sent": sent})

    async def _call_reference_handler(self, request: web.Request) -> web.Response:
        call_reference = request.match_info['call_reference']
        try:
            body = await self._read_json(request)
        except ValueError as e:
            return web.json_response({"ok": False, "error": str(e)}, status=400)
        self.parameters.put(call_reference, body)
        logger.info("Call reference registered", call_reference=call_reference)
        return web.json_response({"ok": True, "callReference": call_reference}, status=201)

    async def _sessions_stats_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            "active_sessions": len(self.sessions),
            "call_sids": self.sessions.call_sids(),
            "pending_call_references": len(self.parameters),
        })

    async def _health_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "healthy",
            "version": __version__,
            "active_sessions": len(self.sessions),
        })

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Expose Prometheus metrics."""
        data = generate_latest()
        # CONTENT_TYPE_LATEST carries a charset, which content_type= rejects
        return web.Response(body=data, headers={"Content-Type": CONTENT_TYPE_LATEST})

    # ------------------------------------------------------------------
    # Twilio voice webhooks
    # ------------------------------------------------------------------

    async def _read_payload(self, request: web.Request) -> Dict[str, Any]:
        """Twilio posts form fields; JSON bodies are accepted too."""
        if not request.body_exists:
            return {}
        if request.content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
            return dict(await request.post())
        return await self._read_json(request)

    def _public_host(self, request: web.Request) -> str:
        return public_host(self.config.server.public_base_url or request.host)

    def _relay_twiml(self, request: web.Request, call_reference: Optional[str]) -> str:
        ws_url = f"wss://{self._public_host(request)}{self.config.server.ws_path}"
        return conversation_relay_twiml(ws_url, call_reference=call_reference, options=self.config.relay)

    async def _outbound_call_handler(self, request: web.Request) -> web.Response:
        """
        Register the request properties under a call reference and dial the
        given number; the answered call connects back to the WebSocket.

        Body: ``{"properties": {"phoneNumber": ..., "callReference": ..., ...}}``
        """
        try:
            body = await self._read_json(request)
            properties = body.get("properties")
            if not isinstance(properties, dict):
                raise ValueError("'properties' must be a JSON object")
            phone_number = properties.get("phoneNumber")
            if not phone_number:
                raise ValueError("Phone number is required")
        except ValueError as e:
            return web.json_response({"success": False, "error": str(e)}, status=400)

        call_reference = properties.get("callReference") or str(uuid.uuid4())
        self.parameters.put(call_reference, properties)

        voice = self.services.get("voice")
        if voice is None or not voice.configured:
            logger.error("Outbound call requested but Twilio voice is not configured")
            return web.json_response({"success": False, "error": "Twilio voice calling is not configured"}, status=503)

        try:
            call_sid = await voice.place_call(
                phone_number,
                self._relay_twiml(request, call_reference),
                record=self.config.relay.record_calls,
                status_callback=f"https://{self._public_host(request)}/twilioStatusCallback",
            )
        except ExternalServiceError as e:
            logger.error("Error initiating outbound call", call_reference=call_reference, error=str(e))
            return web.json_response({"success": False, "error": str(e)}, status=502)

        logger.info("Outbound call initiated", call_sid=call_sid, call_reference=call_reference)
        return web.json_response({"success": True, "response": call_sid, "callReference": call_reference})

    async def _connect_relay_handler(self, request: web.Request) -> web.Response:
        """Voice webhook for inbound calls; ``callReference`` may be given in the query or body."""
        try:
            payload = await self._read_payload(request)
        except ValueError as e:
            return web.json_response({"success": False, "error": str(e)}, status=400)
        call_reference = request.query.get("callReference") or payload.get("callReference")
        logger.info("Connecting call to Conversation Relay", call_sid=payload.get("CallSid"), call_reference=call_reference)
        return web.Response(text=self._relay_twiml(request, call_reference), content_type="application/xml")

    async def _status_callback_handler(self, request: web.Request) -> web.Response:
        try:
            payload = await self._read_payload(request)
        except ValueError as e:
            return web.json_response({"success": False, "error": str(e)}, status=400)

        call_sid = payload.get("CallSid") or payload.get("callSid")
        session = self.sessions.get(call_sid) if call_sid else None
        update = status_update(payload)
        logger.info("Twilio status callback", call_sid=call_sid, status=payload.get("CallStatus"), live=session is not None)

        inserted = False
        if session is not None and update is not None:
            session.insert_message("system", json.dumps(update))
            inserted = True
        return web.json_response({"success": True, "inserted": inserted})

    async def _resolve_ticket(
        self,
        call_sid: str,
        call_reference: Optional[str],
        from_number: Optional[str],
    ) -> Optional[str]:
        """
        Find the ticket a call belongs to: parameter data registered for the
        call reference, then the call's own parameter data (live or ended),
        then the newest open incident of the caller's ServiceNow user.
        """
        ticket = (self.parameters.get(call_reference) or {}).get("ticketNumber")
        if ticket:
            logger.info("Ticket found from call reference", ticket=ticket, call_reference=call_reference)
            return ticket

        session = self.sessions.get(call_sid)
        data = session.context.parameter_data if session is not None else self.ended_calls.get(call_sid)
        ticket = (data or {}).get("ticketNumber")
        if ticket:
            logger.info("Ticket found from session data", ticket=ticket, call_sid=call_sid)
            return ticket

        servicenow = self.services.get("servicenow")
        if not from_number or servicenow is None or not servicenow.configured:
            return None
        try:
            incidents = await servicenow.open_incidents_for_phone(from_number)
        except ExternalServiceError as e:
            logger.warning("Error looking up caller tickets", call_sid=call_sid, error=str(e))
            return None
        if not incidents:
            return None
        ticket = incidents[0].get("number")
        logger.info("Ticket found from caller's open incidents", ticket=ticket, call_sid=call_sid)
        return ticket

    async def _add_ticket_notes(self, ticket: str, notes: str) -> Optional[str]:
        """Append work notes to ``ticket``. Returns an error message, or None on success."""
        servicenow = self.services.get("servicenow")
        if servicenow is None or not servicenow.configured:
            return "ServiceNow is not configured"
        try:
            record = await servicenow.add_work_notes(ticket, notes)
        except ExternalServiceError as e:
            return str(e)
        if record is None:
            return f"Ticket {ticket} not found"
        return None

    async def _transcript_webhook_handler(self, request: web.Request) -> web.Response:
        """Add a Voice Intelligence transcript to the call's ServiceNow ticket."""
        try:
            payload = await self._read_payload(request)
        except ValueError as e:
            return web.json_response({"success": False, "error": str(e)}, status=400)

        call_sid = payload.get("CallSid")
        if not call_sid or not payload.get("TranscriptText"):
            logger.error("Transcript webhook missing required fields", call_sid=call_sid)
            return web.json_response(
                {"success": False, "error": "Missing required fields: CallSid or TranscriptText"}, status=400,
            )

        ticket = await self._resolve_ticket(call_sid, payload.get("CallReference"), payload.get("From"))
        if ticket is None:
            logger.info("No ticket for transcript; logged only", call_sid=call_sid)
            return web.json_response({
                "success": True,
                "message": "Transcript received but no associated ticket found",
                "callSid": call_sid,
                "action": "logged_only",
            })

        error = await self._add_ticket_notes(ticket, transcript_notes(payload))
        if error:
            logger.error("Failed to add transcript to ticket", ticket=ticket, call_sid=call_sid, error=error)
            return web.json_response(
                {"success": False, "error": f"Failed to update ticket: {error}", "ticketNumber": ticket}, status=500,
            )
        logger.info("Transcript added to ticket", ticket=ticket, call_sid=call_sid)
        return web.json_response({
            "success": True,
            "message": f"Transcript added to ticket {ticket}",
            "ticketNumber": ticket,
            "callSid": call_sid,
        })

    async def _recording_webhook_handler(self, request: web.Request) -> web.Response:
        """Add a completed recording's link to the call's ServiceNow ticket."""
        try:
            payload = await self._read_payload(request)
        except ValueError as e:
            return web.json_response({"success": False, "error": str(e)}, status=400)

        call_sid = payload.get("CallSid")
        recording_sid = payload.get("RecordingSid")
        recording_url = payload.get("RecordingUrl")
        if not (call_sid and recording_sid and recording_url):
            logger.error("Recording webhook missing required fields", call_sid=call_sid, recording_sid=recording_sid)
            return web.json_response(
                {"success": False, "error": "Missing required fields: CallSid, RecordingSid, or RecordingUrl"},
                status=400,
            )

        status = payload.get("RecordingStatus")
        if status != "completed":
            logger.info("Recording not completed; skipped", recording_sid=recording_sid, status=status)
            return web.json_response({
                "success": True,
                "message": f"Recording status is {status}, will process when completed",
                "recordingSid": recording_sid,
                "callSid": call_sid,
            })

        ticket = await self._resolve_ticket(call_sid, payload.get("CallReference"), payload.get("From"))
        if ticket is None:
            logger.info("No ticket for recording; logged only", call_sid=call_sid, recording_sid=recording_sid)
            return web.json_response({
                "success": True,
                "message": "Recording received but no associated ticket found",
                "callSid": call_sid,
                "recordingSid": recording_sid,
                "action": "logged_only",
            })

        error = await self._add_ticket_notes(ticket, recording_notes(payload))
        if error:
            logger.error("Failed to add recording to ticket", ticket=ticket, call_sid=call_sid, error=error)
            return web.json_response(
                {"success": False, "error": f"Failed to update ticket: {error}", "ticketNumber": ticket}, status=500,
            )
        logger.info("Recording added to ticket", ticket=ticket, call_sid=call_sid, recording_sid=recording_sid)
        return web.json_response({
            "success": True,
            "message": f"Recording information added to ticket {ticket}",
            "ticketNumber": ticket,
            "callSid": call_sid,
            "recordingSid": recording_sid,
            "recordingUrl": recording_download_url(recording_url),
        })


def create_app(
    config: AppConfig,
    *,
    backend_factory: Optional[Callable[[], StreamBackend]] = None,
    services: Optional[Dict[str, Any]] = None,
) -> web.Application:
    return RelayServer(config, backend_factory=backend_factory, services=services).build_app()


async def serve(config: AppConfig) -> None:
    """Run the server until SIGINT/SIGTERM."""
    runner = web.AppRunner(create_app(config))
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()
    logger.info(
        "Relay agent listening",
        host=config.server.host,
        port=config.server.port,
        ws_path=config.server.ws_path,
        model=config.llm.model,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await shutdown_event.wait()
    await runner.cleanup()


def main() -> None:
    load_dotenv()
    config = load_config()
    configure_logging(log_level=config.logging.level.upper())

    errors, warnings = validate_config(config)
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)
    if errors:
        logger.error("Configuration validation failed", errors=errors)
        raise SystemExit(1)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Relay agent has shut down.")


if __name__ == "__main__":
    main()
