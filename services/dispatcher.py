"""
Dispatcher - Per-message reply pipeline
=======================================

The dispatcher wires everything together for each inbound message:

    record inbound -> gate chain -> rule matcher -> resolver -> sends

Storage calls run in worker threads so a locked database does not
stall the event loop. The dispatcher is also the only writer of the
shared connection state, which it updates from transport lifecycle
events and send failures.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Optional

from core.config import Config
from core.exceptions import TransportError
from core.logging import get_logger, set_log_context, clear_log_context, mask_identifier
from core.state import ConnectionState, ConnectionStatus, MESSAGE_RECORDED
from rules.clock import resolve_zone
from rules.engine import RulesEngine
from rules.gates import GateChain, GateResult
from rules.models import MessageContext, Settings
from transport.base import (
    Transport,
    InboundMessage,
    is_session_lost,
    CONNECTED,
    DISCONNECTED,
    QR_READY,
    AUTH_FAILED,
)
from .fallback import GenerativeFallback
from .responder import ResponseResolver, ReplyPlan, StepKind

logger = get_logger("services.dispatcher")

BOT_SENDER = "bot"
DASHBOARD_SENDER = "dashboard"


@dataclass
class DispatchResult:
    """
    What happened to one inbound message.

    Attributes:
        context: The message context the pipeline ran on
        gate: Gate chain outcome
        plan: Reply plan (None when gated)
        sent: Texts actually sent, in order
        records: Stored records (inbound first)
        errors: Send failures, as text
        session_lost: Whether a send failure ended the session
    """
    context: MessageContext
    gate: GateResult
    plan: Optional[ReplyPlan] = None
    sent: List[str] = field(default_factory=list)
    records: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    session_lost: bool = False

    @property
    def rule_id(self) -> Optional[int]:
        return self.plan.rule_id if self.plan else None


class Dispatcher:
    """
    Auto-reply orchestrator.

    Example:
        dispatcher = Dispatcher(db, transport, fallback, state, config)
        dispatcher.attach()
        await dispatcher.start()
    """

    def __init__(
        self,
        storage,
        transport: Transport,
        fallback: GenerativeFallback,
        state: Optional[ConnectionState] = None,
        config: Optional[Config] = None,
        engine: Optional[RulesEngine] = None,
        gates: Optional[GateChain] = None,
        resolver: Optional[ResponseResolver] = None
    ):
        """
        Args:
            storage: Storage collaborator (``create_record``,
                ``list_enabled_rules``, ``get_settings``)
            transport: Chat transport
            fallback: Generative fallback invoker
            state: Shared connection state
            config: Application configuration
        """
        self.storage = storage
        self.transport = transport
        self.fallback = fallback
        self.state = state or ConnectionState()
        self.notifier = self.state.notifier
        self.config = config or Config()
        self.engine = engine or RulesEngine()
        self.gates = gates or GateChain()
        self.resolver = resolver or ResponseResolver()
        self._attached = False

    # === Lifecycle ===

    def attach(self) -> None:
        """Subscribe to the transport's messages and lifecycle events."""
        if self._attached:
            return

        self.transport.on_message(self.handle)
        self.transport.on(CONNECTED, self._on_connected)
        self.transport.on(QR_READY, self._on_qr_ready)
        self.transport.on(DISCONNECTED, self._on_disconnected)
        self.transport.on(AUTH_FAILED, self._on_auth_failed)
        self._attached = True

    def _on_connected(self, payload: Dict[str, Any]) -> None:
        self.state.set_status(ConnectionStatus.CONNECTED)

    def _on_qr_ready(self, payload: Dict[str, Any]) -> None:
        self.state.set_status(ConnectionStatus.QR_GENERATED, qr_code=payload.get("qr"))

    def _on_disconnected(self, payload: Dict[str, Any]) -> None:
        self.state.set_status(ConnectionStatus.NOT_CONNECTED, reason=payload.get("reason"))

    def _on_auth_failed(self, payload: Dict[str, Any]) -> None:
        self.state.set_status(
            ConnectionStatus.NOT_CONNECTED,
            reason=payload.get("error") or "Authentication failed"
        )

    async def start(self) -> None:
        self.attach()
        await self.transport.start()

    async def stop(self) -> None:
        await self.transport.stop()
        await self.fallback.aclose()

    # === Message pipeline ===

    async def _load_settings(self) -> Settings:
        try:
            settings = await asyncio.to_thread(self.storage.get_settings)
        except Exception as e:
            logger.warning(f"Could not read settings, using defaults: {e}")
            return Settings()
        return settings or Settings()

    def build_context(self, message: InboundMessage, settings: Settings) -> MessageContext:
        """Build the message context with the timestamp in the reference zone."""
        zone = resolve_zone(settings.timezone, self.config.reply.default_timezone)
        timestamp = message.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        return MessageContext(
            body=message.body or "",
            sender=message.sender,
            is_group=message.is_group,
            timestamp=timestamp.astimezone(zone),
        )

    async def _record(self, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Store a message record. Failures are logged, never raised."""
        try:
            record = await asyncio.to_thread(self.storage.create_record, "message", fields)
        except Exception as e:
            logger.error(f"Failed to record {fields.get('direction')} message: {e}")
            return None

        self.notifier.emit(MESSAGE_RECORDED, record)
        return record

    async def _match(self, context: MessageContext):
        try:
            rules = await asyncio.to_thread(self.storage.list_enabled_rules)
            return self.engine.match(context, rules), None
        except Exception as e:
            logger.error(f"Rule evaluation failed: {e}", exc_info=True)
            return None, e

    async def handle(self, message: InboundMessage) -> DispatchResult:
        """
        Run the full pipeline for one inbound message.

        Never raises for storage, matching, generation or send failures.
        """
        set_log_context(chat=mask_identifier(message.sender))
        try:
            return await self._handle(message)
        finally:
            clear_log_context()

    async def _handle(self, message: InboundMessage) -> DispatchResult:
        logger.info(f"Received {'group' if message.is_group else 'personal'} message")

        settings = await self._load_settings()
        context = self.build_context(message, settings)
        result = DispatchResult(context=context, gate=GateResult(True))

        inbound = await self._record({
            "chat_id": message.sender,
            "sender": message.sender,
            "recipient": message.recipient,
            "body": message.body,
            "direction": "in",
            "status": "received",
        })
        if inbound:
            result.records.append(inbound)

        result.gate = self.gates.evaluate(settings, context)
        if not result.gate:
            logger.info(f"Reply suppressed: {result.gate.reason.value}")
            return result

        match, error = await self._match(context)
        result.plan = self.resolver.resolve(match, error)

        for step in result.plan.steps:
            if step.kind == StepKind.TEXT:
                text = step.text
            else:
                text = await self.fallback.generate(message.body or "")

            try:
                await self.transport.send(message.sender, text)
            except Exception as e:
                result.errors.append(str(e))
                if is_session_lost(e):
                    logger.error(f"Session lost while sending reply: {e}")
                    result.session_lost = True
                    self.state.set_status(ConnectionStatus.NOT_CONNECTED, reason=str(e))
                    break
                logger.error(f"Failed to send reply: {e}")
                continue

            result.sent.append(text)
            outbound = await self._record({
                "chat_id": message.sender,
                "sender": BOT_SENDER,
                "recipient": message.sender,
                "body": text,
                "direction": "out",
                "status": "sent",
            })
            if outbound:
                result.records.append(outbound)

        logger.info(f"Sent {len(result.sent)} reply message(s) ({result.plan.outcome.value})")
        return result

    # === Operator actions ===

    async def send_manual(self, target: str, text: str) -> Optional[Dict[str, Any]]:
        """
        Send a message on the operator's behalf.

        Returns:
            The outbound record, or None if recording failed

        Raises:
            TransportError: If not connected or the send fails
        """
        if not self.state.is_connected:
            raise TransportError(
                "Transport is not connected",
                details={"status": self.state.status.value}
            )

        try:
            await self.transport.send(target, text)
        except Exception as e:
            if is_session_lost(e):
                self.state.set_status(ConnectionStatus.NOT_CONNECTED, reason=str(e))
            if isinstance(e, TransportError):
                raise
            raise TransportError(f"Failed to send message: {e}")

        logger.info(f"Manual message sent to {mask_identifier(target)}")
        return await self._record({
            "chat_id": target,
            "sender": DASHBOARD_SENDER,
            "recipient": target,
            "body": text,
            "direction": "out",
            "status": "sent",
        })

    async def logout(self) -> None:
        """Log the transport out; the state ends up not connected either way."""
        try:
            await self.transport.logout()
        except Exception as e:
            logger.error(f"Logout failed: {e}")
        finally:
            self.state.set_status(ConnectionStatus.NOT_CONNECTED, reason="Manual logout")

    def status(self) -> Dict[str, Any]:
        snapshot = self.state.snapshot()
        return {
            "status": snapshot.status.value,
            "qr_available": snapshot.qr_code is not None,
            "qr_code": snapshot.qr_code,
            "reason": snapshot.reason,
        }
