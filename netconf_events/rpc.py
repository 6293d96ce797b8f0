def make_rpc(guts, msg_id=None):
    """Wrap ``guts`` into an ``<rpc>``; without ``msg_id`` the client assigns one"""
    attrs = ' message-id="{}"'.format(msg_id) if msg_id else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rpc{attrs} xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">{guts}</rpc>'
    ).format(guts=guts, attrs=attrs)


def get(filter=None, msg_id=None):
    pieces = []
    pieces.append("<get>")
    if filter:
        pieces.append(filter)
    pieces.append("</get>")
    return make_rpc("".join(pieces), msg_id=msg_id)


def lock(target, msg_id=None):
    pieces = []
    pieces.append("<lock>")
    pieces.append("<target><{}/></target>".format(target))
    pieces.append("</lock>")
    return make_rpc("".join(pieces), msg_id=msg_id)


def unlock(target, msg_id=None):
    pieces = []
    pieces.append("<unlock>")
    pieces.append("<target><{}/></target>".format(target))
    pieces.append("</unlock>")
    return make_rpc("".join(pieces), msg_id=msg_id)


def close_session(msg_id=None):
    return make_rpc("<close-session/>", msg_id=msg_id)


def get_schema(identifier, version=None, format="yang", msg_id=None):
    pieces = []
    pieces.append(
        '<get-schema xmlns="urn:ietf:params:xml:ns:yang:ietf-netconf-monitoring">'
    )
    pieces.append("<identifier>{}</identifier>".format(identifier))
    if version:
        pieces.append("<version>{}</version>".format(version))
    pieces.append("<format>{}</format>".format(format))
    pieces.append("</get-schema>")
    return make_rpc("".join(pieces), msg_id=msg_id)


def yang_library_filter(version):
    """Subtree filter selecting the YANG library of the given revision

    ``"1.1"`` (:rfc:`8525`) selects ``<yang-library>``, ``"1.0"``
    (:rfc:`7895`) the deprecated ``<modules-state>``.
    """
    container = "yang-library" if version == "1.1" else "modules-state"
    return (
        '<filter type="subtree">'
        '<{} xmlns="urn:ietf:params:xml:ns:yang:ietf-yang-library"/>'
        "</filter>"
    ).format(container)
