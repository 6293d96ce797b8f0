from lxml import etree

from netconf_events.error import (
    MalformedMessage,
    NetconfProtocolError,
    RpcError,
    UnsupportedMessage,
    first_error_field,
)
from netconf_events.log import logger

PRE_HELLO = "pre-hello"
CONNECTED = "connected"
CLOSED = "closed"


def parse_xml(raw):
    """Parse one framed message

    :raises MalformedMessage: if ``raw`` is not well-formed XML
    """
    try:
        parser = etree.XMLParser(
            resolve_entities=False, no_network=True, huge_tree=True
        )
        return etree.fromstring(raw, parser)
    except etree.XMLSyntaxError as e:
        raise MalformedMessage(
            "Malformed response, Details: {}".format(e), _to_text(raw)
        )


def _to_text(raw):
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _children(ele, name):
    return [
        c for c in ele if isinstance(c.tag, str) and etree.QName(c).localname == name
    ]


class RpcReply:
    """An ``<rpc-reply>`` routed to the callback of its request

    :ivar str message_id: The message-id attribute of the reply
    :ivar str xml: The reply as received from the server
    :ivar reply_ele: The lxml parsed representation of the reply
    :ivar str kind: ``"ok"``, ``"data"`` or ``"error"``
    :ivar str error_message: First ``<error-message>`` for error replies
    :ivar str error_tag: First ``<error-tag>`` for error replies
    :ivar str elapsed: Round-trip time, set when the reply is resolved
    """

    OK = "ok"
    DATA = "data"
    ERROR = "error"

    def __init__(self, message_id, xml, ele):
        self.message_id = message_id
        self.xml = xml
        self.reply_ele = ele
        self.error_message = None
        self.error_tag = None
        self.elapsed = None

        if _children(ele, "rpc-error"):
            self.kind = RpcReply.ERROR
            self.error_message = (
                first_error_field(ele, "error-message") or "RPC Error"
            )
            self.error_tag = first_error_field(ele, "error-tag")
        elif _children(ele, "ok"):
            self.kind = RpcReply.OK
        else:
            self.kind = RpcReply.DATA

    @property
    def ok(self):
        return self.kind != RpcReply.ERROR

    @property
    def is_error(self):
        return self.kind == RpcReply.ERROR

    def data(self):
        """The ``<data>`` element of the reply, whatever its namespace"""
        found = _children(self.reply_ele, "data")
        return found[0] if found else None

    def exception(self):
        """:class:`RpcError` describing this reply, ``None`` on success"""
        if self.is_error:
            return RpcError(self.xml, self.reply_ele)
        return None


class MessageDispatcher:
    """Classifies inbound messages and routes them to ``handler``

    ``handler`` provides ``hello_received(xml, ele)``,
    ``reply_received(reply)`` and ``notification_received(xml, ele)``.

    Fatal violations raise :class:`NetconfProtocolError`; a message
    that is not well-formed raises :class:`MalformedMessage` and one
    with an unknown root element :class:`UnsupportedMessage`.
    """

    def __init__(self, handler):
        self.handler = handler
        self.state = PRE_HELLO

    def reset(self):
        self.state = PRE_HELLO

    def close(self):
        self.state = CLOSED

    def dispatch(self, raw):
        if self.state == CLOSED:
            logger.debug("Dropping message received after close")
            return

        ele = parse_xml(raw)
        xml = _to_text(raw)
        root = etree.QName(ele).localname

        if root == "hello":
            if self.state == CONNECTED:
                raise NetconfProtocolError("unexpected <hello> message", xml)
            self.handler.hello_received(xml, ele)
            self.state = CONNECTED
        elif self.state != CONNECTED:
            raise NetconfProtocolError("expecting <hello> message", xml)
        elif root == "notification":
            self.handler.notification_received(xml, ele)
        elif root == "rpc-reply":
            msg_id = ele.get("message-id")
            if not msg_id:
                raise NetconfProtocolError("rpc-reply w/o message-id received", xml)
            self.handler.reply_received(RpcReply(msg_id, xml, ele))
        else:
            raise UnsupportedMessage("Unsupported message received", xml)
