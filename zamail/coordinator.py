# zamail/coordinator.py
"""
ZaMail: Message Board Coordinator

Top-level orchestrator of the encrypted message board. Consumes the
wallet session, the FHEVM instance manager, the decryption signature
store and a contract gateway, and exposes:

    send_message(recipient, text)  - encrypt + submit, then refresh
    refresh_messages()             - replace sent/received id lists
    decrypt_message(id)            - authorize + decrypt one message
    state                          - CoordinatorState snapshot with the
                                     capability flags the UI binds to

Consistency model:
    Every operation captures a context (session version, chain id,
    address, instance) before it suspends and re-checks it immediately
    before each commit. A session change bumps the version, resets the
    per-context state and re-resolves the deployment; results computed
    for an older context are logged at DEBUG and dropped.

Usage:
    coordinator = MessageBoardCoordinator(sessions, fhevm, signatures, factory)
    await sessions.connect()
    await coordinator.settle()
    await coordinator.send_message(bob, "hi")
    print(coordinator.render_status())
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Optional, Dict, Any, List, Set, Tuple, FrozenSet, Mapping, Callable, Iterable

from web3 import Web3

from .codec import encode_text, decode_text, validate_text
from .config import ZaMailConfig
from .contracts import ContractGateway, GatewayFactory, Message, TransactionReceipt
from .errors import (
    ChainMismatchError,
    ContractNotDeployedError,
    MessageValidationError,
    SignatureRejectedError,
)
from .fhevm import FheInstanceManager, FhevmInstance, FhevmStatus
from .session import WalletSession, WalletSessionProvider
from .signatures import DecryptionSignatureStore


logger = logging.getLogger("zamail.coordinator")


# =============================================================================
# State
# =============================================================================

class CoordinatorPhase(Enum):
    """Connection lifecycle."""
    DISCONNECTED = "disconnected"
    NOT_DEPLOYED = "connected-not-deployed"
    READY = "connected-ready"


@dataclass(frozen=True)
class ClearMessage:
    """Decrypted message content."""
    handle: str
    clear: str


@dataclass(frozen=True)
class CoordinatorState:
    """
    Immutable view of the coordinator.

    Capability flags are properties computed from the fields, so they can
    never disagree with them.
    """
    chain_id: Optional[int] = None
    address: Optional[str] = None
    contract_address: Optional[str] = None
    is_deployed: Optional[bool] = None
    fhevm_status: FhevmStatus = FhevmStatus.IDLE
    fhevm_error: Optional[str] = None
    instance_ready: bool = False
    is_sending: bool = False
    is_refreshing: bool = False
    decrypting: FrozenSet[int] = frozenset()
    sent_messages: Tuple[int, ...] = ()
    received_messages: Tuple[int, ...] = ()
    message_contents: Mapping[int, ClearMessage] = field(
        default_factory=lambda: MappingProxyType({})
    )
    message: str = ""
    error: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return self.address is not None and self.chain_id is not None

    @property
    def is_decrypting(self) -> bool:
        return bool(self.decrypting)

    @property
    def can_send_message(self) -> bool:
        return (
            self.instance_ready
            and self.has_session
            and self.is_deployed is True
            and not self.is_sending
        )

    @property
    def can_get_messages(self) -> bool:
        return self.has_session and self.is_deployed is True and not self.is_refreshing

    @property
    def can_decrypt(self) -> bool:
        return self.instance_ready and self.has_session and not self.is_decrypting

    @property
    def total_messages(self) -> int:
        return len(self.sent_messages) + len(self.received_messages)

    @property
    def phase(self) -> CoordinatorPhase:
        if not self.has_session:
            return CoordinatorPhase.DISCONNECTED
        if self.is_deployed is True:
            return CoordinatorPhase.READY
        return CoordinatorPhase.NOT_DEPLOYED


StateCallback = Callable[[CoordinatorState], None]


@dataclass(frozen=True)
class _Context:
    """What an operation started under."""
    version: int
    chain_id: int
    address: str
    session: WalletSession
    gateway: Optional[ContractGateway]
    contract_address: Optional[str]
    instance: Optional[FhevmInstance]


def _unique(ids: Iterable[int], exclude: Optional[Set[int]] = None) -> Tuple[int, ...]:
    """Order-preserving de-duplication (first occurrence wins)."""
    seen: Set[int] = set(exclude or ())
    result: List[int] = []
    for message_id in ids:
        if message_id in seen:
            continue
        seen.add(message_id)
        result.append(message_id)
    return tuple(result)


# =============================================================================
# Coordinator
# =============================================================================

class MessageBoardCoordinator:
    """Send / refresh / decrypt orchestration over the live session."""

    def __init__(
        self,
        session_provider: WalletSessionProvider,
        fhevm_manager: FheInstanceManager,
        signature_store: DecryptionSignatureStore,
        gateway_factory: GatewayFactory,
        config: Optional[ZaMailConfig] = None,
    ):
        """
        Args:
            session_provider: Wallet session source
            fhevm_manager: Instance manager (bound to the same wallet)
            signature_store: Decryption signature cache
            gateway_factory: Builds a ContractGateway for a session
            config: Client settings (defaults if None)
        """
        self._sessions = session_provider
        self._fhevm = fhevm_manager
        self._signatures = signature_store
        self._gateway_factory = gateway_factory
        self._config = config or ZaMailConfig()

        self._version = 0
        self._session_key: Optional[Tuple[str, int]] = None
        self._gateway: Optional[ContractGateway] = None
        self._contract_address: Optional[str] = None
        self._is_deployed: Optional[bool] = None
        self._is_sending = False
        self._is_refreshing = False
        self._refresh_done: Optional[asyncio.Future] = None
        self._decrypting: Dict[int, asyncio.Task] = {}
        self._sent: Tuple[int, ...] = ()
        self._received: Tuple[int, ...] = ()
        self._contents: Dict[int, ClearMessage] = {}
        self._messages: Dict[int, Message] = {}
        self._message = ""
        self._error: Optional[str] = None

        self._tasks: Set[asyncio.Task] = set()
        self._subscribers: List[StateCallback] = []
        self._unsubscribe = [
            session_provider.subscribe(self._on_session),
            fhevm_manager.subscribe(lambda _state: self._publish()),
        ]
        self._on_session(session_provider.session)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> CoordinatorState:
        """Fresh snapshot built from the live inputs."""
        session = self._sessions.session
        fhevm_state = self._fhevm.state
        instance_ready = (
            session is not None
            and fhevm_state.is_ready
            and fhevm_state.chain_id == session.chain_id
        )
        return CoordinatorState(
            chain_id=session.chain_id if session else None,
            address=session.address if session else None,
            contract_address=self._contract_address,
            is_deployed=self._is_deployed,
            fhevm_status=fhevm_state.status,
            fhevm_error=fhevm_state.error,
            instance_ready=instance_ready,
            is_sending=self._is_sending,
            is_refreshing=self._is_refreshing,
            decrypting=frozenset(self._decrypting),
            sent_messages=self._sent,
            received_messages=self._received,
            message_contents=MappingProxyType(dict(self._contents)),
            message=self._message,
            error=self._error,
        )

    @property
    def can_send_message(self) -> bool:
        return self.state.can_send_message

    @property
    def can_get_messages(self) -> bool:
        return self.state.can_get_messages

    @property
    def can_decrypt(self) -> bool:
        return self.state.can_decrypt

    @property
    def phase(self) -> CoordinatorPhase:
        return self.state.phase

    @property
    def contract_address(self) -> Optional[str]:
        return self._contract_address

    @property
    def is_deployed(self) -> Optional[bool]:
        return self._is_deployed

    @property
    def sent_messages(self) -> Tuple[int, ...]:
        return self._sent

    @property
    def received_messages(self) -> Tuple[int, ...]:
        return self._received

    @property
    def message_contents(self) -> Mapping[int, ClearMessage]:
        return MappingProxyType(dict(self._contents))

    @property
    def message(self) -> str:
        return self._message

    @property
    def error(self) -> Optional[str]:
        return self._error

    def get_message(self, message_id: int) -> Optional[Message]:
        """Fetched message record (with clear text once decrypted)."""
        return self._messages.get(message_id)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        if not self._subscribers:
            return
        state = self.state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("Coordinator subscriber %r failed", callback)

    def _set_message(self, message: str) -> None:
        self._message = message
        self._publish()

    def close(self) -> None:
        """Detach from the session provider and the instance manager."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    # =========================================================================
    # Context Tracking
    # =========================================================================

    def _on_session(self, session: Optional[WalletSession]) -> None:
        key = session.key if session is not None else None
        if key == self._session_key:
            return

        self._session_key = key
        self._version += 1
        self._gateway = self._gateway_factory(session) if session is not None else None
        self._contract_address = self._gateway.contract_address if self._gateway else None
        self._is_deployed = None
        self._is_sending = False
        self._is_refreshing = False
        self._refresh_done = None
        self._decrypting = {}
        self._sent = ()
        self._received = ()
        self._contents = {}
        self._messages = {}
        self._error = None
        self._message = "" if session is None else "Resolving MessageBoard deployment..."

        logger.info(
            "Session context %s: %s",
            self._version,
            f"{session.address} on chain {session.chain_id}" if session else "disconnected",
        )
        self._publish()

        if session is not None:
            self._schedule(self._resolve_and_refresh())

    def _capture(self) -> Optional[_Context]:
        session = self._sessions.session
        if session is None:
            return None
        fhevm_state = self._fhevm.state
        instance = fhevm_state.instance if fhevm_state.chain_id == session.chain_id else None
        return _Context(
            version=self._version,
            chain_id=session.chain_id,
            address=session.address,
            session=session,
            gateway=self._gateway,
            contract_address=self._contract_address,
            instance=instance,
        )

    def _is_current(self, ctx: _Context, check_instance: bool = False) -> bool:
        try:
            self._check(ctx, check_instance)
        except ChainMismatchError:
            return False
        return True

    def _check(self, ctx: _Context, check_instance: bool = False) -> None:
        """
        Raises:
            ChainMismatchError: If the context changed while suspended
        """
        if ctx.version != self._version:
            raise ChainMismatchError("session replaced")
        if not self._sessions.same_chain(ctx.chain_id):
            raise ChainMismatchError("chain changed")
        if not self._sessions.same_signer(ctx.address):
            raise ChainMismatchError("account changed")
        if check_instance and self._fhevm.instance is not ctx.instance:
            raise ChainMismatchError("FHEVM instance replaced")

    # =========================================================================
    # Background Work
    # =========================================================================

    def _schedule(self, coro) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; call resolve_deployment() explicitly")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> CoordinatorState:
        """Wait for scheduled work and instance creation to finish."""
        while True:
            await self._fhevm.settle()
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        await self._fhevm.settle()
        return self.state

    async def _resolve_and_refresh(self) -> None:
        address = await self.resolve_deployment()
        if address is not None:
            await self.refresh_messages()

    # =========================================================================
    # Deployment
    # =========================================================================

    async def resolve_deployment(self) -> Optional[str]:
        """
        Look up the MessageBoard for the current chain.

        Returns:
            Contract address, or None if not deployed (or the context changed)
        """
        ctx = self._capture()
        if ctx is None or ctx.gateway is None:
            return None

        try:
            address = await ctx.gateway.is_deployed()
            self._check(ctx)
        except ChainMismatchError as e:
            logger.debug("Dropping deployment lookup: %s", e.reason)
            return None
        except Exception as e:
            if self._is_current(ctx):
                logger.warning("Deployment lookup failed on chain %s: %s", ctx.chain_id, e)
                self._error = str(e)
                self._set_message(f"Unable to reach MessageBoard: {e}")
            return None

        self._is_deployed = address is not None
        if address is not None:
            self._contract_address = address
            logger.info("MessageBoard at %s on chain %s", address, ctx.chain_id)
            self._set_message("MessageBoard ready")
        else:
            logger.info("MessageBoard not deployed on chain %s", ctx.chain_id)
            self._set_message(f"MessageBoard is not deployed on chain {ctx.chain_id}")
        return address

    # =========================================================================
    # Send
    # =========================================================================

    def _validate_recipient(self, recipient: str) -> str:
        if not isinstance(recipient, str) or not Web3.is_address(recipient):
            raise MessageValidationError(f"Invalid recipient address: {recipient!r}")
        return Web3.to_checksum_address(recipient)

    async def send_message(self, recipient: str, text: str) -> Optional[TransactionReceipt]:
        """
        Encrypt `text` and send it to `recipient`.

        Returns:
            Receipt on success, None if the action is not available or failed
            (the failure is in `state.error`)

        Raises:
            MessageValidationError: Bad recipient address or message text
        """
        recipient = self._validate_recipient(recipient)
        validate_text(text, self._config.max_message_length)

        state = self.state
        if not state.can_send_message:
            logger.debug("send_message ignored: not available (%s)", state.phase.value)
            return None

        ctx = self._capture()
        instance = ctx.instance
        gateway = ctx.gateway
        self._is_sending = True
        self._error = None
        self._set_message("Encrypting message...")

        receipt: Optional[TransactionReceipt] = None
        try:
            value = encode_text(text, self._config.max_message_length)
            encrypted = await instance.encrypt(value, ctx.contract_address, ctx.address)
            self._check(ctx, check_instance=True)

            self._set_message("Sending message...")
            receipt = await gateway.send_message(recipient, encrypted)
            self._check(ctx)

            logger.info("Message sent to %s (tx %s)", recipient, receipt.tx_hash)
            self._message = "Message sent!"
        except ChainMismatchError as e:
            logger.debug("Dropping send_message result: %s", e.reason)
            return None
        except Exception as e:
            if self._is_current(ctx):
                logger.warning("send_message failed: %s", e)
                self._error = str(e)
                self._message = f"Send failed: {e}"
            return None
        finally:
            if self._is_current(ctx):
                self._is_sending = False
                self._publish()

        await self._refresh_after_send(ctx)
        return receipt

    async def _refresh_after_send(self, ctx: _Context) -> None:
        # A refresh already in flight may have read the lists before the
        # transaction was mined; let it finish, then read again.
        while self._refresh_done is not None and not self._refresh_done.done():
            await asyncio.shield(self._refresh_done)
        if self._is_current(ctx):
            await self.refresh_messages()

    # =========================================================================
    # Refresh
    # =========================================================================

    async def refresh_messages(self) -> bool:
        """
        Re-read the sent and received id lists of the current account.

        Returns:
            True if the lists were replaced
        """
        if not self.state.can_get_messages:
            logger.debug("refresh_messages ignored: not available")
            return False

        ctx = self._capture()
        gateway = ctx.gateway
        self._is_refreshing = True
        done = asyncio.get_running_loop().create_future()
        self._refresh_done = done
        self._set_message("Refreshing messages...")

        try:
            sent = await gateway.sent_message_ids(ctx.address)
            received = await gateway.received_message_ids(ctx.address)
            self._check(ctx)
        except ChainMismatchError as e:
            logger.debug("Dropping refresh result: %s", e.reason)
            return False
        except Exception as e:
            if self._is_current(ctx):
                logger.warning("refresh_messages failed: %s", e)
                self._error = str(e)
                self._message = f"Refresh failed: {e}"
            return False
        finally:
            done.set_result(None)
            if self._is_current(ctx):
                self._is_refreshing = False
                self._publish()

        received_ids = _unique(int(i) for i in received)
        sent_ids = _unique((int(i) for i in sent), exclude=set(received_ids))
        self._sent = sent_ids
        self._received = received_ids
        self._set_message(
            f"Messages refreshed: {len(sent_ids)} sent, {len(received_ids)} received"
        )
        return True

    # =========================================================================
    # Decrypt
    # =========================================================================

    async def decrypt_message(self, message_id: int) -> Optional[ClearMessage]:
        """
        Decrypt one message, prompting for a decryption signature if needed.

        Returns:
            The clear message, or None if unavailable or failed (the
            failure is in `state.error`)
        """
        cached = self._contents.get(message_id)
        if cached is not None:
            return cached

        pending = self._decrypting.get(message_id)
        if pending is not None:
            return await asyncio.shield(pending)

        if not self.state.can_decrypt:
            logger.debug("decrypt_message ignored: not available")
            return None

        ctx = self._capture()
        task = asyncio.ensure_future(self._decrypt(ctx, message_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._decrypting[message_id] = task
        self._error = None
        self._set_message("Decrypting message...")
        return await asyncio.shield(task)

    async def _decrypt(self, ctx: _Context, message_id: int) -> Optional[ClearMessage]:
        instance = ctx.instance
        try:
            if ctx.gateway is None or ctx.contract_address is None:
                raise ContractNotDeployedError(ctx.chain_id)

            message = self._messages.get(message_id)
            if message is None:
                message = await ctx.gateway.get_message(message_id)
                self._check(ctx)
                self._messages[message_id] = message

            self._set_message("Checking decryption signature...")
            signature = await self._signatures.get_or_create(
                ctx.contract_address,
                ctx.address,
                instance=instance,
                signer=ctx.session.signer,
            )
            self._check(ctx, check_instance=True)

            self._set_message("Decrypting message...")
            results = await instance.decrypt(
                [message.handle], signature, ctx.contract_address, ctx.address
            )
            self._check(ctx, check_instance=True)

            clear = ClearMessage(handle=message.handle, clear=decode_text(results[message.handle]))
            self._contents[message_id] = clear
            self._messages[message_id] = message.with_clear_text(clear.clear)
            self._message = "Decryption completed!"
            logger.info("Message %s decrypted", message_id)
            return clear
        except ChainMismatchError as e:
            logger.debug("Dropping decryption of %s: %s", message_id, e.reason)
            return None
        except SignatureRejectedError as e:
            if self._is_current(ctx):
                logger.warning("Decryption signature rejected: %s", e)
                self._error = str(e)
                self._message = "Decryption signature rejected"
            return None
        except Exception as e:
            if self._is_current(ctx):
                logger.warning("decrypt_message(%s) failed: %s", message_id, e)
                self._error = str(e)
                self._message = f"Decryption failed: {e}"
            return None
        finally:
            if self._is_current(ctx):
                self._decrypting.pop(message_id, None)
                self._publish()

    # =========================================================================
    # Status Panel
    # =========================================================================

    def render_status(self) -> str:
        """Plain-text status panel."""
        state = self.state
        if not state.has_session:
            return "ZaMail\n  Wallet not connected. Call connect() to continue."

        lines = ["ZaMail"]
        if state.is_deployed is False:
            lines.append(
                f"  MessageBoard is not deployed on chain {state.chain_id}."
                " Deploy it or switch to another network."
            )
            return "\n".join(lines)

        def prop(name: str, value: Any) -> None:
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif value is None:
                value = "undefined"
            lines.append(f"  {name}: {value}")

        lines.append("Chain Infos")
        prop("ChainId", state.chain_id)
        prop("User Address(Signer)", state.address)
        lines.append("Contract")
        prop("ZaMail Contract", state.contract_address)
        prop("isDeployed", state.is_deployed)
        lines.append("Messages")
        prop("Sent Messages", len(state.sent_messages))
        prop("Received Messages", len(state.received_messages))
        prop("Total Messages", state.total_messages)
        for message_id in state.received_messages:
            content = state.message_contents.get(message_id)
            prop(f"  #{message_id}", f"Decrypted: {content.clear}" if content else "encrypted")
        lines.append("FHEVM instance")
        prop("Fhevm Instance", "OK" if state.instance_ready else "undefined")
        prop("Fhevm Status", state.fhevm_status.value)
        prop("Fhevm Error", state.fhevm_error or "No Error")
        lines.append("Status")
        prop("isRefreshing", state.is_refreshing)
        prop("isDecrypting", state.is_decrypting)
        prop("isSending", state.is_sending)
        prop("canGetMessages", state.can_get_messages)
        prop("canDecrypt", state.can_decrypt)
        prop("canSendMessage", state.can_send_message)
        prop("Message", state.message)
        return "\n".join(lines)
