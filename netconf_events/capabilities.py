from lxml import etree

from netconf_events.constants import (
    CAPABILITY_TABLE,
    CAP_NETCONF_10,
    CAP_NETCONF_11,
    FRAMING_CHUNKED,
    FRAMING_EOM,
    NAMESPACES,
)
from netconf_events.error import CapabilityMismatch, NetconfProtocolError


def capabilities_from_hello(hello):
    return [
        x.text.strip()
        for x in hello.xpath(
            "/nc:hello/nc:capabilities/nc:capability", namespaces=NAMESPACES
        )
        if x.text
    ]


def parse_hello(hello):
    """Extract session-id and capability URIs from a server ``<hello>``

    :param hello: lxml element of the ``<hello>``
    :rtype: tuple(int, list of str)
    """
    ids = hello.xpath("/nc:hello/nc:session-id", namespaces=NAMESPACES)
    if not ids or not (ids[0].text or "").strip().isdigit():
        raise NetconfProtocolError("<hello> without valid session-id received")
    return (int(ids[0].text), capabilities_from_hello(hello))


def canonical_capabilities(uris):
    """Map server capability URIs onto the short tags of the capability table

    Matching is by prefix, so ``...:confirmed-commit:1.1`` and
    ``...:netconf-monitoring?module=...`` still match.
    """
    return [
        tag
        for (tag, prefix) in CAPABILITY_TABLE
        if any(u.startswith(prefix) for u in uris)
    ]


def select_framing(client_capabilities, server_capabilities):
    """Choose the framing both peers understand

    :raises CapabilityMismatch: if neither base:1.1 nor base:1.0 is shared
    """
    if _announces(client_capabilities, CAP_NETCONF_11) and _announces(
        server_capabilities, CAP_NETCONF_11
    ):
        return FRAMING_CHUNKED
    if _announces(client_capabilities, CAP_NETCONF_10) and _announces(
        server_capabilities, CAP_NETCONF_10
    ):
        return FRAMING_EOM
    raise CapabilityMismatch(
        "[rfc6242] netconf-over-ssh framing capabilities incompatible"
    )


def _announces(capabilities, base):
    # base capabilities carry no parameters, compare the URI itself
    return any(c.split("?", 1)[0] == base for c in capabilities)


def build_hello(client_capabilities):
    """Serialize the client ``<hello>``

    :param list client_capabilities: capability URIs to announce
    :rtype: bytes
    """
    nc = NAMESPACES["nc"]
    hello = etree.Element("{%s}hello" % nc, nsmap={None: nc})
    caps = etree.SubElement(hello, "{%s}capabilities" % nc)
    for uri in client_capabilities:
        etree.SubElement(caps, "{%s}capability" % nc).text = uri
    return etree.tostring(hello, xml_declaration=True, encoding="UTF-8")
