import logging
import threading
from enum import Enum
from functools import partial

from lxml import etree

from netconf_events import rpc as rpc_builder
from netconf_events.capabilities import (
    build_hello,
    canonical_capabilities,
    parse_hello,
    select_framing,
)
from netconf_events.connect import SshTransport, load_private_key
from netconf_events.constants import (
    DEFAULT_CLIENT_CAPABILITIES,
    FRAMING_CHUNKED,
    FRAMING_EOM,
    REQUEST_ID_SEED,
)
from netconf_events.dispatcher import MessageDispatcher, RpcReply, parse_xml
from netconf_events.error import (
    AlreadyConnected,
    BadRequest,
    FramingError,
    KeyfileError,
    MalformedMessage,
    NetconfProtocolError,
    NotConnected,
    SessionClosedException,
    UnsupportedMessage,
)
from netconf_events.events import Event, EventEmitter
from netconf_events.parser import FramingCodec, encode
from netconf_events.registry import RequestRegistry
from netconf_events.schema import SchemaFetcher

# Defines the scope for netconf traces
_logger = logging.getLogger("netconf_events.client")


def _pretty_xml(xml):
    """Reformats a given string containing an XML document (for human readable output)"""

    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    pretty = ""
    try:
        parser = etree.XMLParser(remove_blank_text=True)
        tree = etree.fromstring(xml, parser)
        pretty = etree.tostring(tree, pretty_print=True).decode()
    except etree.Error as e:
        pretty = "Error: Cannot format XML message: {}\nPlain message is:\n{}".format(
            str(e), xml.decode("utf-8", errors="replace")
        )

    return pretty


class State(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HELLO_EXCHANGED = "hello-exchanged"
    CONNECTED = "connected"


class NetconfClient(EventEmitter):
    """An event driven NETCONF client over SSH

    Each instance owns at most one SSH connection. All inbound
    processing happens on the transport's reader thread; the public
    methods may be called from any thread, including from event
    handlers and RPC callbacks.

    Handlers are registered with :meth:`on`, see
    :class:`netconf_events.events.Event` for the events and their
    arguments.

    :ivar str framing: The active framing mode, "1.0" or "1.1"
    :ivar int session_id: Server assigned session-id, -1 while not connected
    :ivar list capabilities: Canonical tags of the server capabilities
    :ivar list server_capabilities: Capability URIs from the server ``<hello>``
    :ivar list client_capabilities: Capability URIs sent in the client ``<hello>``
    """

    def __init__(self, logger=None, transport_factory=SshTransport):
        """Construct a new, disconnected client

        :param logger: :class:`logging.Logger` (or adapter) to trace
                       the session on; defaults to ``netconf_events.client``

        :param transport_factory: Called with the client as listener to
                                  create the transport of each connection
        """
        super(NetconfClient, self).__init__()
        self.logger = logger or _logger
        self.transport_factory = transport_factory
        self.transport = None
        self.config = None
        self.state = State.DISCONNECTED

        self.codec = FramingCodec()
        self.dispatcher = MessageDispatcher(self)
        self.registry = RequestRegistry(
            on_timeout=self._request_timeout, on_idle=self._idle
        )

        self.client_capabilities = list(DEFAULT_CLIENT_CAPABILITIES)
        self.server_capabilities = []
        self.capabilities = []
        self.session_id = -1
        self.request_id = 0
        self.bytes = 0

        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self.logger.debug("NetconfClient object created")

    @property
    def connected(self):
        return self.state == State.CONNECTED

    @property
    def framing(self):
        return self.codec.mode

    def connect(
        self,
        config,
        keyfile=None,
        client_capabilities=None,
        debug=False,
        password_prompt=None,
    ):
        """Open the SSH connection and start the NETCONF session

        Returns immediately; progress is reported through events,
        ending with ``connected`` or ``error`` / ``disconnected``.

        :param config: :class:`netconf_events.connect.SshConfig`

        :param str keyfile: Private key to authenticate with; only
                            used when the config has neither password
                            nor key

        :param list client_capabilities: Capability URIs to announce;
                                         defaults to base:1.0 and base:1.1

        :param bool debug: Trace the SSH negotiation

        :param password_prompt: ``password_prompt(host, username)`` is
                                asked for a password after each
                                authentication failure
        """
        with self._lock:
            if self.state != State.DISCONNECTED:
                raise AlreadyConnected(
                    "Already connected to {}@{}! Disconnect before establishing "
                    "a new connection!".format(self.config.username, self.config.host)
                )

            self.emit(Event.BUSY)

            if keyfile and not config.password and config.pkey is None:
                try:
                    config.pkey = load_private_key(keyfile)
                except KeyfileError as e:
                    self.logger.warning("Cannot load key file %s: %s", keyfile, e)
                    self.emit(Event.ERROR, "KEYFILE ERROR", str(e))

            if client_capabilities:
                self.client_capabilities = list(client_capabilities)
            else:
                self.client_capabilities = list(DEFAULT_CLIENT_CAPABILITIES)

            self.config = config
            self.state = State.CONNECTING
            self.codec.reset()
            self.dispatcher.reset()
            self.bytes = 0

            self.transport = self.transport_factory(self)
            self.transport.open(config, password_prompt=password_prompt, debug=debug)

    def rpc(self, request, timeout=300, callback=None, on_timeout=None):
        """Send an ``<rpc>``

        A ``message-id`` is assigned if the request has none. The reply
        is reported as ``rpcOk``, ``rpcResponse`` or ``rpcError`` event
        and handed to ``callback`` as
        :class:`netconf_events.dispatcher.RpcReply`.

        :param str request: The complete ``<rpc>`` document

        :param float timeout: Seconds to wait before the request is
                              abandoned with an ``rpcTimeout`` event

        :param callback: Called with the reply

        :param on_timeout: Called with the message-id if the request
                           times out

        :return: The message-id of the request
        :raises NotConnected: if no session is established
        :raises BadRequest: if the request is not a well-formed ``<rpc>``
        :raises DuplicateMessageId: if the message-id is still pending
        """
        self.logger.debug("NetconfClient:rpc()")

        with self._lock:
            if self.state != State.CONNECTED:
                raise NotConnected("Client is not connected")

            if isinstance(request, str):
                request = request.encode("utf-8")
            try:
                ele = parse_xml(request)
            except MalformedMessage as e:
                raise BadRequest(str(e))
            if etree.QName(ele).localname != "rpc":
                raise BadRequest("Missing: rpc")

            msg_id = ele.get("message-id")
            if not msg_id:
                msg_id = "{}:{}".format(self.session_id, self.request_id)
                self.request_id += 1
                ele.set("message-id", msg_id)
                request = etree.tostring(ele, xml_declaration=True, encoding="UTF-8")

            self.registry.register(
                msg_id, partial(self._reply_resolved, callback), timeout, on_timeout
            )

            self.logger.info("execute netconf rpc-request %s", msg_id)
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug("NC Request %s:\n%s", msg_id, _pretty_xml(request))

            self.emit(Event.BUSY)
            frame = encode(request, self.codec.mode)
            transport = self.transport

        # the client lock is released so replies and ticks are not held up
        self._write(transport, frame)
        return msg_id

    def lock(self):
        """Lock the candidate datastore; ``locked`` is emitted on success"""
        self.logger.debug("NetconfClient:lock()")
        return self.rpc(rpc_builder.lock("candidate", msg_id="lock"), 10, self._locked)

    def unlock(self):
        """Unlock the candidate datastore; ``unlocked`` is emitted on success"""
        self.logger.debug("NetconfClient:unlock()")
        return self.rpc(
            rpc_builder.unlock("candidate", msg_id="unlock"), 10, self._unlocked
        )

    def get_yang_library(self, folder=None, revisions=True):
        """Download all schemas of the server's YANG library

        Every schema is reported with a ``yangDefinition`` event.

        :param str folder: Directory to write ``<module>[@<revision>].yang``
                           files into, ``None`` to skip writing

        :param bool revisions: Include the revision in the file names

        :rtype: :class:`netconf_events.schema.SchemaFetcher`
        """
        self.logger.debug("NetconfClient:get_yang_library()")
        if not self.connected:
            raise NotConnected("Client is not connected")
        fetcher = SchemaFetcher(self, folder=folder, revisions=revisions)
        fetcher.start()
        return fetcher

    def close_session(self):
        """Send ``<close-session>`` and disconnect on reply or after a second"""
        self.logger.debug("NetconfClient:close_session()")
        return self.rpc(
            rpc_builder.close_session(msg_id="disconnect"),
            1,
            lambda reply: self.disconnect(),
            on_timeout=lambda msg_id: self.disconnect(),
        )

    def disconnect(self):
        """Request termination of the SSH session

        State is reset once the transport reports the close, exactly as
        for a close initiated by the server.
        """
        self.logger.debug("NetconfClient:disconnect()")
        transport = self.transport
        if transport is not None:
            transport.close()

    # -- transport listener ---------------------------------------------------

    def ssh_greeting(self, greeting):
        self.logger.info("SSH GREETING EVENT %s", greeting.strip())
        self.emit(Event.SSH_GREETING, greeting)

    def ssh_banner(self, banner):
        self.logger.info("SSH BANNER EVENT %s", banner.strip())
        self.emit(Event.SSH_BANNER, banner)

    def ssh_ready(self):
        self.logger.info("SSH READY EVENT")
        try:
            self.transport.open_subsystem("netconf")
        except Exception as e:
            self.logger.error("Cannot enter netconf subsystem: %s", e)
            self.emit(Event.ERROR, "SSH ERROR", str(e) or type(e).__name__)
            self.disconnect()

    def ssh_error(self, message, details):
        self.emit(Event.ERROR, message, details)

    def data_received(self, data):
        with self._lock:
            self.bytes += len(data)
            self.emit(Event.DATA, self.bytes)
            try:
                for msg in self.codec.feed(data):
                    self._handle_message(msg)
            except FramingError as e:
                self.logger.error("FRAME ERROR: %s", e)
                self.dispatcher.close()
                self.emit(Event.ERROR, "FRAME ERROR", str(e))
                self.disconnect()

    def tick(self):
        with self._lock:
            self.registry.expire()

    def ssh_closed(self):
        with self._lock:
            self.logger.info("SSH CLOSE EVENT")
            self.state = State.DISCONNECTED
            self.transport = None
            self.dispatcher.close()
            self.codec.reset()
            self.registry.clear()
            self.server_capabilities = []
            self.capabilities = []
            self.session_id = -1
            self.bytes = 0
            self.emit(Event.DISCONNECTED)

    # -- dispatcher handler ---------------------------------------------------

    def hello_received(self, xml, ele):
        try:
            (session_id, uris) = parse_hello(ele)
            self.server_capabilities = uris
            self.capabilities = canonical_capabilities(uris)
            mode = select_framing(self.client_capabilities, uris)
        except NetconfProtocolError as e:
            if e.xml is None:
                e.xml = xml
            raise

        self.session_id = session_id
        self.request_id = REQUEST_ID_SEED
        self.state = State.HELLO_EXCHANGED
        if mode == FRAMING_CHUNKED:
            self.logger.info("Framing: [base:1.1] rfc6242 ch4.2 Chunked Framing")
        else:
            self.logger.info("Framing: [base:1.0] rfc6242 ch4.3 End-of-Message Framing")

        # the hello itself always uses End-of-Message framing
        self._send(build_hello(self.client_capabilities), FRAMING_EOM)
        self.codec.set_mode(mode)

        self.state = State.CONNECTED
        self.logger.info("Connection established, session-id=%s", session_id)
        self.logger.info("Server capabilities: %s", self.capabilities)
        self.emit(Event.CONNECTED, xml, list(self.capabilities), session_id)

    def notification_received(self, xml, ele):
        self.logger.info("netconf notification received")
        self.emit(Event.NOTIFICATION, xml)

    def reply_received(self, reply):
        if not self.registry.resolve(reply.message_id, reply):
            self.logger.warning(
                "An <rpc-reply> was received with no corresponding handler: %s",
                reply.message_id,
            )

    # -- internals ------------------------------------------------------------

    def _handle_message(self, msg):
        try:
            self.dispatcher.dispatch(msg)
        except (MalformedMessage, UnsupportedMessage) as e:
            self.logger.error("NETCONF ERROR: %s", e)
            self.emit(Event.NETCONF_ERROR, str(e), e.xml)
        except NetconfProtocolError as e:
            self.logger.error("NETCONF ERROR: %s", e)
            self.dispatcher.close()
            self.emit(Event.NETCONF_ERROR, str(e), e.xml)
            self.disconnect()

    def _send(self, msg, mode=None):
        self._write(self.transport, encode(msg, mode or self.codec.mode))

    def _write(self, transport, frame):
        """Hand one framed message to ``transport``

        Only ``_write_lock`` is held while writing; it keeps frames of
        concurrent senders from interleaving on the channel.
        """
        if transport is None:
            raise SessionClosedException("Client is not connected")
        with self._write_lock:
            transport.write(frame)

    def _reply_resolved(self, callback, reply):
        if callback is not None:
            try:
                callback(reply)
            except Exception:
                self.logger.exception("Callback for %s failed", reply.message_id)

        if reply.is_error:
            self.logger.warning(
                "%s RPC-ERROR received, time=%s", reply.message_id, reply.elapsed
            )
            self.emit(
                Event.RPC_ERROR,
                reply.message_id,
                reply.error_message,
                reply.xml,
                reply.elapsed,
            )
        elif reply.kind == RpcReply.OK:
            self.logger.info(
                "%s RPC-OK received, time=%s", reply.message_id, reply.elapsed
            )
            self.emit(Event.RPC_OK, reply.message_id, reply.elapsed)
        else:
            self.logger.info(
                "%s response received, time=%s", reply.message_id, reply.elapsed
            )
            self.emit(Event.RPC_RESPONSE, reply.message_id, reply.xml, reply.elapsed)

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "NC Response %s (%s):\n%s",
                reply.message_id,
                reply.elapsed,
                _pretty_xml(reply.xml),
            )

    def _request_timeout(self, msg_id):
        self.logger.error("netconf-rpc timeout, message-id %s", msg_id)
        self.emit(Event.RPC_TIMEOUT, msg_id)

    def _idle(self):
        self.emit(Event.IDLE)

    def _locked(self, reply):
        if reply.ok:
            self.logger.info("candidate datastore successfully locked")
            self.emit(Event.LOCKED)

    def _unlocked(self, reply):
        if reply.ok:
            self.logger.info("candidate datastore successfully unlocked")
            self.emit(Event.UNLOCKED)
