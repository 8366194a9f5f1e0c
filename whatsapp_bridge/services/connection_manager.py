"""
whatsapp_bridge/services/connection_manager.py

Purpose: Lifecycle of one WhatsApp connection per ecommercant

- Starts a supervisor task per merchant (at most one at a time)
- Persists credential updates before handling the next protocol event
- Caches QR codes for the HTTP façade and prints them for the operator
- Reconnects after drops with bounded exponential backoff
- Never reconnects after an explicit logout
- Logout + credential deletion on request
"""

import asyncio
import contextlib
from dataclasses import dataclass
from functools import partial
from typing import Dict, List, Optional, Set

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.exceptions import (
    InternalError,
    NoActiveSessionError,
    SendFailedError,
    SessionNotFoundError,
    ValidationError,
)
from whatsapp_bridge.core.logging import get_logger, LogContext
from whatsapp_bridge.services.credential_store import CredentialStore
from whatsapp_bridge.services.message_router import MessageRouter, get_message_router
from whatsapp_bridge.services.qr_service import print_qr_terminal, render_qr_data_url
from whatsapp_bridge.services.session_store import SessionStore, get_session_store
from whatsapp_bridge.utils.phone_utils import normalize_phone_to_jid
from whatsapp_bridge.whatsapp.bridge import create_bridge_socket
from whatsapp_bridge.whatsapp.socket import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdate,
    MessagesUpsert,
    QRCodeUpdate,
    SocketFactory,
    WhatsAppSocket,
)
from whatsapp_bridge.whatsapp.states import ConnectionState, is_valid_transition

logger = get_logger(__name__)


class ConnectionDropped(Exception):
    """A protocol connection closed for any reason other than logout."""

    def __init__(self, merchant_id: str, status_code: Optional[int] = None, was_open: bool = False, error: Optional[str] = None):
        self.merchant_id = merchant_id
        self.status_code = status_code
        self.was_open = was_open
        self.error = error
        super().__init__(f"Connection for {merchant_id} dropped (status={status_code}, error={error})")


@dataclass
class ReconnectPolicy:
    """Bounds for consecutive failed connection attempts."""

    max_attempts: int = 10
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 1.0

    @classmethod
    def from_settings(cls) -> "ReconnectPolicy":
        return cls(
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
            base_delay=settings.RECONNECT_BASE_DELAY,
            max_delay=settings.RECONNECT_MAX_DELAY,
            jitter=settings.RECONNECT_JITTER,
        )


class ConnectionManager:
    """
    Owns every merchant's protocol connection.

    Each merchant gets a supervisor task that opens a socket, drains its
    events and decides whether to reconnect when it closes. A drop after
    the connection was open reconnects immediately with a fresh retry
    budget; failures to open are retried with backoff until the policy
    gives up.
    """

    def __init__(
        self,
        store: SessionStore,
        credentials: CredentialStore,
        router: MessageRouter,
        socket_factory: SocketFactory = create_bridge_socket,
        policy: Optional[ReconnectPolicy] = None,
        print_qr: bool = False,
    ):
        self._store = store
        self._credentials = credentials
        self._router = router
        self._socket_factory = socket_factory
        self._policy = policy or ReconnectPolicy()
        self._print_qr = print_qr
        self._states: Dict[str, ConnectionState] = {}
        self._supervisors: Dict[str, asyncio.Task] = {}
        self._inbound_tasks: Set[asyncio.Task] = set()
        self._stopping: Set[str] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def running_merchants(self) -> List[str]:
        return [merchant_id for merchant_id in self._supervisors if self.is_running(merchant_id)]

    def get_state(self, merchant_id: str) -> ConnectionState:
        return self._states.get(merchant_id, ConnectionState.DISCONNECTED)

    def state_counts(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in ConnectionState}
        for state in self._states.values():
            counts[state.value] += 1
        return counts

    def is_running(self, merchant_id: str) -> bool:
        task = self._supervisors.get(merchant_id)
        return task is not None and not task.done()

    def is_connected(self, merchant_id: str) -> bool:
        """True iff a live handle exists with an authenticated identity."""
        socket = self._store.get_connection(merchant_id)
        return socket is not None and socket.is_open and bool(socket.user)

    def get_qr(self, merchant_id: str) -> Optional[str]:
        return self._store.get_qr(merchant_id)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def start_connection(self, merchant_id: str) -> bool:
        """
        Starts the supervisor for a merchant.

        Idempotent: a merchant whose supervisor is still running is left
        alone, so there is never more than one live handle per merchant.

        Returns:
            True if a new supervisor was started
        """
        try:
            self._credentials.merchant_dir(merchant_id)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if self.is_running(merchant_id):
            logger.info(f"Connection for ecommercant {merchant_id} already running ({self.get_state(merchant_id).value})")
            return False

        self._stopping.discard(merchant_id)
        task = asyncio.create_task(self._supervise(merchant_id), name=f"whatsapp-{merchant_id}")
        self._supervisors[merchant_id] = task
        task.add_done_callback(partial(self._on_supervisor_done, merchant_id))
        return True

    async def delete_connection(self, merchant_id: str):
        """
        Logs out, forgets the merchant and deletes its credentials.

        Raises:
            SessionNotFoundError: If the merchant has no connection
            InternalError: If logout or cleanup fails
        """
        socket = self._store.get_connection(merchant_id)
        if socket is None and not self.is_running(merchant_id):
            raise SessionNotFoundError()

        previous_state = self.get_state(merchant_id)
        self._stopping.add(merchant_id)
        self._set_state(merchant_id, ConnectionState.CLOSING)

        try:
            if socket is not None:
                await socket.logout()
            await self._stop_supervisor(merchant_id)
            self._store.remove_connection(merchant_id)
            self._store.remove_qr(merchant_id)
            await self._credentials.delete(merchant_id)
        except Exception as e:
            logger.error(f"❌ Error while disconnecting ecommercant {merchant_id}: {e}", exc_info=True)
            self._stopping.discard(merchant_id)
            self._states[merchant_id] = previous_state
            raise InternalError(str(e) or type(e).__name__) from e

        self._stopping.discard(merchant_id)
        self._set_state(merchant_id, ConnectionState.DISCONNECTED)
        logger.info(f"❎ WhatsApp disconnected for ecommercant {merchant_id}")

    async def send_text(self, merchant_id: str, phone: str, message: str) -> str:
        """
        Sends a text through a merchant's connection.

        Returns:
            The JID the message was sent to

        Raises:
            NoActiveSessionError: If the merchant has no live handle
            SendFailedError: If the protocol send fails
        """
        socket = self._store.get_connection(merchant_id)
        if socket is None:
            raise NoActiveSessionError()

        jid = normalize_phone_to_jid(phone)
        logger.info(f"🕐 Sending to {jid} via ecommercant {merchant_id}")

        try:
            await socket.send_message(jid, message)
        except Exception as e:
            logger.error(f"❌ Send error to {jid}: {e}")
            raise SendFailedError(details={"jid": jid, "error": str(e)}) from e

        logger.info(f"✅ Message sent to {jid}")
        return jid

    async def shutdown(self):
        """Stops every supervisor and closes handles. Credentials are kept."""
        self._stopping.update(self._supervisors.keys())

        tasks = list(self._supervisors.values()) + list(self._inbound_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inbound_tasks.clear()

        for merchant_id in self._store.merchant_ids():
            socket = self._store.get_connection(merchant_id)
            if socket is not None:
                await self._close_socket(socket)
            self._store.remove_connection(merchant_id)

        logger.info(f"Connection manager stopped ({len(tasks)} tasks cancelled)")

    # ------------------------------------------------------------------
    # Supervisor
    # ------------------------------------------------------------------

    async def _supervise(self, merchant_id: str):
        with LogContext(merchant_id=merchant_id):
            while True:
                try:
                    async for attempt in self._retrying(merchant_id):
                        with attempt:
                            await self._run_session(merchant_id)
                    return
                except ConnectionDropped as drop:
                    if merchant_id in self._stopping:
                        return
                    if drop.was_open:
                        logger.info(f"🔁 Reconnecting ecommercant {merchant_id} after drop (status={drop.status_code})")
                        continue

                    logger.error(
                        f"❌ Giving up on ecommercant {merchant_id} after "
                        f"{self._policy.max_attempts} failed attempts: {drop.error}"
                    )
                    self._store.remove_connection(merchant_id)
                    self._set_state(merchant_id, ConnectionState.DISCONNECTED)
                    return

    def _retrying(self, merchant_id: str) -> AsyncRetrying:
        def should_retry(exc: BaseException) -> bool:
            return (
                isinstance(exc, ConnectionDropped)
                and not exc.was_open
                and merchant_id not in self._stopping
            )

        return AsyncRetrying(
            retry=retry_if_exception(should_retry),
            stop=stop_after_attempt(self._policy.max_attempts),
            wait=wait_exponential_jitter(
                self._policy.base_delay,
                self._policy.max_delay,
                jitter=self._policy.jitter,
            ),
            before_sleep=self._log_backoff,
            reraise=True,
        )

    def _log_backoff(self, retry_state: RetryCallState):
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"⏳ Connection attempt {retry_state.attempt_number}/{self._policy.max_attempts} failed, "
            f"retrying in {delay:.1f}s"
        )

    async def _run_session(self, merchant_id: str):
        """
        Runs one socket until it closes.

        Returns normally on logout; raises ConnectionDropped otherwise.
        """
        self._set_state(merchant_id, ConnectionState.CONNECTING)

        socket: Optional[WhatsAppSocket] = None
        try:
            credentials = await self._credentials.load(merchant_id)
            socket = self._socket_factory(merchant_id, credentials)
            self._store.set_connection(merchant_id, socket)
            await socket.connect()
        except Exception as e:
            logger.warning(f"⚠️ Could not open connection for ecommercant {merchant_id}: {e}")
            if socket is not None:
                self._store.remove_connection(merchant_id, socket)
            raise ConnectionDropped(merchant_id, was_open=False, error=str(e)) from e

        was_open = False
        try:
            async for event in socket.events():
                if isinstance(event, CredentialsUpdate):
                    await self._save_credentials(merchant_id, event)
                elif isinstance(event, QRCodeUpdate):
                    self._on_qr(merchant_id, event.qr)
                elif isinstance(event, ConnectionOpened):
                    was_open = True
                    self._set_state(merchant_id, ConnectionState.OPEN)
                    logger.info(f"✅ WhatsApp connected for ecommercant {merchant_id} ({event.user})")
                elif isinstance(event, ConnectionClosed):
                    self._on_closed(merchant_id, socket, event, was_open)
                    return
                elif isinstance(event, MessagesUpsert):
                    self._dispatch(merchant_id, socket, event)
        finally:
            await self._close_socket(socket)

        raise ConnectionDropped(merchant_id, was_open=was_open, error="event stream ended")

    # ------------------------------------------------------------------
    # Event reactions
    # ------------------------------------------------------------------

    async def _save_credentials(self, merchant_id: str, event: CredentialsUpdate):
        if merchant_id in self._stopping:
            return
        try:
            await self._credentials.save(merchant_id, event.changes)
        except Exception as e:
            logger.error(f"❌ Failed to persist credentials for ecommercant {merchant_id}: {e}", exc_info=True)

    def _on_qr(self, merchant_id: str, qr: str):
        try:
            self._store.set_qr(merchant_id, render_qr_data_url(qr))
        except Exception as e:
            logger.error(f"❌ Failed to render QR for ecommercant {merchant_id}: {e}")
            return

        self._set_state(merchant_id, ConnectionState.AWAITING_QR)
        logger.info(f"📲 QR generated for ecommercant {merchant_id}")
        if self._print_qr:
            print_qr_terminal(qr)

    def _on_closed(self, merchant_id: str, socket: WhatsAppSocket, event: ConnectionClosed, was_open: bool):
        should_reconnect = not event.is_logged_out
        logger.info(
            f"🔁 Disconnected from {merchant_id} (status={event.status_code}). "
            f"Reconnect? {should_reconnect}"
        )

        if should_reconnect:
            raise ConnectionDropped(merchant_id, event.status_code, was_open, event.error)

        self._store.remove_connection(merchant_id, socket)
        self._store.remove_qr(merchant_id)
        if merchant_id not in self._stopping:
            self._set_state(merchant_id, ConnectionState.DISCONNECTED)

    def _dispatch(self, merchant_id: str, socket: WhatsAppSocket, event: MessagesUpsert):
        task = asyncio.create_task(self._router.handle_upsert(merchant_id, socket, event))
        self._inbound_tasks.add(task)
        task.add_done_callback(self._inbound_tasks.discard)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_state(self, merchant_id: str, new_state: ConnectionState) -> bool:
        current = self.get_state(merchant_id)
        if current == new_state and new_state not in (ConnectionState.CONNECTING, ConnectionState.AWAITING_QR):
            return True

        if not is_valid_transition(current, new_state):
            logger.warning(
                f"Invalid connection state transition for {merchant_id}: {current.value} -> {new_state.value}"
            )
            return False

        self._states[merchant_id] = new_state
        with LogContext(connection_state=new_state.value):
            logger.debug(f"Connection state {current.value} -> {new_state.value}")
        return True

    async def _close_socket(self, socket: WhatsAppSocket):
        try:
            await socket.close()
        except Exception as e:
            logger.warning(f"Error closing connection for ecommercant {socket.merchant_id}: {e}")

    async def _stop_supervisor(self, merchant_id: str):
        task = self._supervisors.get(merchant_id)
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _on_supervisor_done(self, merchant_id: str, task: asyncio.Task):
        if self._supervisors.get(merchant_id) is task:
            del self._supervisors[merchant_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"❌ Supervisor for ecommercant {merchant_id} crashed: {exc!r}")


# Global connection manager
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Get or create the global connection manager."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager(
            store=get_session_store(),
            credentials=CredentialStore(settings.SESSION_DIR),
            router=get_message_router(),
            socket_factory=create_bridge_socket,
            policy=ReconnectPolicy.from_settings(),
            print_qr=settings.PRINT_QR_IN_TERMINAL,
        )
    return _connection_manager


async def close_connection_manager():
    """Stop all connections (credentials stay on disk)."""
    global _connection_manager
    if _connection_manager:
        await _connection_manager.shutdown()
        _connection_manager = None
