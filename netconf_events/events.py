from enum import Enum

from netconf_events.log import logger


class Event(Enum):
    """Events emitted by :class:`netconf_events.ncclient.NetconfClient`

    The value is the event name; handler arguments are listed per member.
    """

    SSH_BANNER = "sshBanner"  # (banner)
    SSH_GREETING = "sshGreeting"  # (greeting)
    CONNECTED = "connected"  # (hello_xml, capabilities, session_id)
    DISCONNECTED = "disconnected"  # ()
    LOCKED = "locked"  # ()
    UNLOCKED = "unlocked"  # ()
    RPC_OK = "rpcOk"  # (msg_id, elapsed)
    RPC_RESPONSE = "rpcResponse"  # (msg_id, xml, elapsed)
    RPC_ERROR = "rpcError"  # (msg_id, error_message, xml, elapsed)
    RPC_TIMEOUT = "rpcTimeout"  # (msg_id)
    NETCONF_ERROR = "netconfError"  # (message, xml)
    NOTIFICATION = "notification"  # (xml)
    BUSY = "busy"  # ()
    IDLE = "idle"  # ()
    DATA = "data"  # (total_bytes_received)
    YANG_DEFINITION = "yangDefinition"  # (name, revision, yang, index, total)
    ERROR = "error"  # (message, details)


class EventEmitter:
    """Minimal observer registry keyed by :class:`Event`

    Each emitted occurrence reaches every handler registered at that
    moment exactly once. A failing handler is logged and does not keep
    the remaining handlers from running.
    """

    def __init__(self):
        self._handlers = {}

    def on(self, event, handler):
        self._handlers.setdefault(Event(event), []).append(handler)
        return handler

    def off(self, event, handler):
        handlers = self._handlers.get(Event(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event, *args):
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for %s event failed", event.value)
