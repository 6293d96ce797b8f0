from lxml import etree
from netconf_events.constants import NAMESPACES


class NetconfClientException(Exception):
    """Base class for all ``netconf_events`` exceptions"""

    pass


class SessionClosedException(NetconfClientException):
    """This exception is raised when a request is made on a closed session"""

    pass


class RpcError(NetconfClientException):
    """Raised by :meth:`RpcReply.exception` for an ``<rpc-reply>``
    that carries one or more ``<rpc-error>`` elements

    :ivar reply_raw: The raw text that was returned by the server
    :ivar reply_ele: The lxml parsed representation of the reply
    :ivar message: If present, the contents of the first ``<error-message>`` tag
    :ivar tag: If present, the contents of the first ``<error-tag>`` tag
    :ivar info: If present, the contents of the first ``<error-info>`` tag

    """

    def __init__(self, raw, ele):
        self.reply_raw = raw
        self.reply_ele = ele
        self.message = None
        self.tag = None
        self.info = None

        msg = first_error_field(ele, "error-message")
        if msg is not None:
            self.message = msg
        else:
            msg = "RPC Error"

        self.tag = first_error_field(ele, "error-tag")

        # For ncclient compatibility
        self.severity = "error"

        err_info = ele.xpath(
            "/nc:rpc-reply/nc:rpc-error/nc:error-info", namespaces=NAMESPACES
        )
        if err_info:
            self.info = etree.tostring(err_info[0])

        super(RpcError, self).__init__(msg)


def first_error_field(ele, name):
    """Text of the first ``<rpc-error>/<name>`` below an ``<rpc-reply>``

    The exact NETCONF namespace is preferred; servers that qualify the
    error fields with another namespace (or none) are tolerated.
    """
    found = ele.xpath(
        "/nc:rpc-reply/nc:rpc-error/nc:{}".format(name), namespaces=NAMESPACES
    )
    if not found:
        found = ele.xpath(
            "/*[local-name()='rpc-reply']/*[local-name()='rpc-error']"
            "/*[local-name()='{}']".format(name)
        )
    if found and found[0].text is not None:
        return found[0].text.strip()
    return None


class NetconfProtocolError(NetconfClientException):
    """This exception is raised on any NETCONF protocol error

    Protocol errors are fatal; the session is torn down after one is
    reported.

    :ivar xml: The message that violated the protocol, if any
    """

    def __init__(self, message, xml=None):
        self.xml = xml
        super(NetconfProtocolError, self).__init__(message)


class FramingError(NetconfProtocolError):
    """The inbound byte stream violates :rfc:`6242` framing"""

    pass


class CapabilityMismatch(NetconfProtocolError):
    """Client and server share no base capability, so no framing can be chosen"""

    pass


class MalformedMessage(NetconfClientException):
    """A framed message is not well-formed XML

    :ivar xml: The offending message text
    """

    def __init__(self, message, xml):
        self.xml = xml
        super(MalformedMessage, self).__init__(message)


class UnsupportedMessage(NetconfClientException):
    """A well-formed message with an unknown root element"""

    def __init__(self, message, xml):
        self.xml = xml
        super(UnsupportedMessage, self).__init__(message)


class InvalidSSHHostkey(NetconfClientException):
    """This exception is raised if the SSH hostkey isn't valid"""

    pass


class KeyfileError(NetconfClientException):
    """The SSH private key file could not be read or parsed"""

    pass


class ClientError(NetconfClientException):
    """Base class for misuse of the client API"""

    pass


class NotConnected(ClientError):
    pass


class AlreadyConnected(ClientError):
    pass


class BadRequest(ClientError):
    pass


class DuplicateMessageId(ClientError):
    """The message-id of a new request is still pending"""

    pass
