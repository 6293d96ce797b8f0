import pytest
from lxml import etree
from mock import MagicMock

from netconf_events.dispatcher import (
    CLOSED,
    CONNECTED,
    PRE_HELLO,
    MessageDispatcher,
    RpcReply,
    parse_xml,
)
from netconf_events.error import (
    MalformedMessage,
    NetconfProtocolError,
    UnsupportedMessage,
)

from common import (
    RPC_ERROR_BAD_FILTER,
    RPC_ERROR_WITHOUT_MSG,
    SERVER_HELLO,
    TEST_NOTIFICATION,
    data_reply,
    ok_reply,
)


@pytest.fixture()
def handler():
    return MagicMock()


@pytest.fixture()
def dispatcher(handler):
    return MessageDispatcher(handler)


def connected(dispatcher):
    dispatcher.dispatch(SERVER_HELLO)
    assert dispatcher.state == CONNECTED
    return dispatcher


def test_hello_first(dispatcher, handler):
    assert dispatcher.state == PRE_HELLO
    connected(dispatcher)
    (xml, ele) = handler.hello_received.call_args[0]
    assert "<session-id>4</session-id>" in xml
    assert ele.tag.endswith("hello")


def test_reply_before_hello(dispatcher, handler):
    with pytest.raises(NetconfProtocolError) as excinfo:
        dispatcher.dispatch(ok_reply(1))
    assert "expecting <hello> message" in str(excinfo.value)
    assert "rpc-reply" in excinfo.value.xml
    handler.reply_received.assert_not_called()


def test_second_hello(dispatcher):
    connected(dispatcher)
    with pytest.raises(NetconfProtocolError) as excinfo:
        dispatcher.dispatch(SERVER_HELLO)
    assert "unexpected <hello> message" in str(excinfo.value)


def test_failed_hello_stays_pre_hello(dispatcher, handler):
    handler.hello_received.side_effect = NetconfProtocolError("boom")
    with pytest.raises(NetconfProtocolError):
        dispatcher.dispatch(SERVER_HELLO)
    assert dispatcher.state == PRE_HELLO


def test_notification(dispatcher, handler):
    connected(dispatcher)
    dispatcher.dispatch(TEST_NOTIFICATION)
    (xml, _) = handler.notification_received.call_args[0]
    assert "<eventClass>fault</eventClass>" in xml


def test_reply_without_message_id(dispatcher):
    connected(dispatcher)
    with pytest.raises(NetconfProtocolError) as excinfo:
        dispatcher.dispatch(
            b'<rpc-reply xmlns="urn:ietf:params:xml:ns:netconf:base:1.0"><ok/></rpc-reply>'
        )
    assert "rpc-reply w/o message-id received" in str(excinfo.value)


def test_malformed(dispatcher, handler):
    connected(dispatcher)
    with pytest.raises(MalformedMessage) as excinfo:
        dispatcher.dispatch(b"<rpc-reply message-id='1'><ok></rpc-reply>")
    assert str(excinfo.value).startswith("Malformed response, Details:")
    assert excinfo.value.xml == "<rpc-reply message-id='1'><ok></rpc-reply>"
    assert dispatcher.state == CONNECTED


def test_unsupported(dispatcher):
    connected(dispatcher)
    with pytest.raises(UnsupportedMessage):
        dispatcher.dispatch(b"<something-else/>")
    assert dispatcher.state == CONNECTED


def test_closed_drops_messages(dispatcher, handler):
    connected(dispatcher)
    dispatcher.close()
    assert dispatcher.state == CLOSED
    dispatcher.dispatch(b"not even xml")
    handler.reply_received.assert_not_called()

    dispatcher.reset()
    assert dispatcher.state == PRE_HELLO


def test_entities_are_not_expanded():
    ele = parse_xml(
        b'<!DOCTYPE x [<!ENTITY e SYSTEM "file:///etc/passwd">]><x>&e;</x>'
    )
    assert b"root:" not in etree.tostring(ele)


def route(dispatcher, handler, raw):
    dispatcher.dispatch(raw)
    return handler.reply_received.call_args[0][0]


def test_reply_ok(dispatcher, handler):
    connected(dispatcher)
    reply = route(dispatcher, handler, ok_reply("lock"))
    assert reply.message_id == "lock"
    assert reply.kind == RpcReply.OK
    assert reply.ok
    assert reply.exception() is None


def test_reply_data(dispatcher, handler):
    connected(dispatcher)
    reply = route(dispatcher, handler, data_reply("4:10000"))
    assert reply.kind == RpcReply.DATA
    assert etree.QName(reply.data()[0]).localname == "top"


def test_reply_error(dispatcher, handler):
    connected(dispatcher)
    reply = route(dispatcher, handler, RPC_ERROR_BAD_FILTER)
    assert reply.message_id == "42"
    assert reply.is_error
    assert not reply.ok
    assert reply.error_message == "bad filter"
    assert reply.error_tag == "bad-element"
    assert str(reply.exception()) == "bad filter"


def test_reply_error_without_message(dispatcher, handler):
    connected(dispatcher)
    reply = route(dispatcher, handler, RPC_ERROR_WITHOUT_MSG)
    assert reply.is_error
    assert reply.error_message == "RPC Error"
