from functools import partial

from lxml import etree

from netconf_events.connect import SshConfig
from netconf_events.constants import DELIMITER_10, FRAMING_EOM
from netconf_events.error import SessionClosedException
from netconf_events.events import Event
from netconf_events.parser import encode, split_chunked

SERVER_HELLO = b"""<?xml version="1.0" encoding="UTF-8"?>
<hello xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <capabilities>
    <capability>urn:ietf:params:netconf:base:1.0</capability>
    <capability>urn:ietf:params:netconf:base:1.1</capability>
    <capability>urn:ietf:params:netconf:capability:candidate:1.0</capability>
    <capability>urn:ietf:params:netconf:capability:confirmed-commit:1.1</capability>
    <capability>urn:ietf:params:netconf:capability:yang-library:1.1?revision=2019-01-04&amp;content-id=42</capability>
    <capability>urn:ietf:params:xml:ns:yang:ietf-netconf-monitoring?module=ietf-netconf-monitoring&amp;revision=2010-10-04</capability>
    <capability>http://example.com/foo</capability>
  </capabilities>
  <session-id>4</session-id>
</hello>
"""

SERVER_HELLO_10 = b"""
<hello xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <capabilities>
    <capability>urn:ietf:params:netconf:base:1.0</capability>
    <capability>urn:ietf:params:netconf:capability:yang-library:1.0?revision=2016-06-21&amp;module-set-id=7</capability>
  </capabilities>
  <session-id>5</session-id>
</hello>
"""

SERVER_HELLO_11_ONLY = b"""
<hello xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <capabilities>
    <capability>urn:ietf:params:netconf:base:1.1</capability>
  </capabilities>
  <session-id>6</session-id>
</hello>
"""

RPC_ERROR_WITH_MSG = b"""
<rpc-reply message-id="101"
  xmlns="urn:ietf:params:xml:ns:netconf:base:1.0"
  xmlns:xc="urn:ietf:params:xml:ns:netconf:base:1.0">
  <rpc-error>
    <error-type>application</error-type>
    <error-tag>invalid-value</error-tag>
    <error-severity>error</error-severity>
    <error-path xmlns:t="http://example.com/schema/1.2/config">
      /t:top/t:interface[t:name="Ethernet0/0"]/t:mtu
    </error-path>
    <error-message xml:lang="en">MTU value 25000 is not within range 256..9192</error-message>
  </rpc-error>
</rpc-reply>
"""

RPC_ERROR_WITHOUT_MSG = b"""
<rpc-reply message-id="101"
  xmlns="urn:ietf:params:xml:ns:netconf:base:1.0"
  xmlns:xc="urn:ietf:params:xml:ns:netconf:base:1.0">
  <rpc-error>
    <error-type>application</error-type>
    <error-tag>invalid-value</error-tag>
    <error-severity>error</error-severity>
  </rpc-error>
</rpc-reply>
"""

RPC_ERROR_BAD_FILTER = b"""<rpc-reply message-id="42"
  xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <rpc-error>
    <error-type>protocol</error-type>
    <error-tag>bad-element</error-tag>
    <error-severity>error</error-severity>
    <error-message>bad filter</error-message>
  </rpc-error>
</rpc-reply>"""

TEST_NOTIFICATION = b"""
<notification
   xmlns="urn:ietf:params:xml:ns:netconf:notification:1.0">
   <eventTime>2007-07-08T00:01:00Z</eventTime>
   <event xmlns="http://example.com/event/1.0">
      <eventClass>fault</eventClass>
      <severity>major</severity>
    </event>
</notification>
"""

YANG_LIBRARY_11 = """<rpc-reply message-id="{msg_id}"
  xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <data>
    <yang-library xmlns="urn:ietf:params:xml:ns:yang:ietf-yang-library">
      <module-set>
        <name>complete</name>
        <module>
          <name>example-a</name>
          <revision>2024-01-01</revision>
          <namespace>urn:example:a</namespace>
          <submodule>
            <name>example-a-types</name>
            <revision>2024-01-01</revision>
          </submodule>
        </module>
        <module>
          <name>example-b</name>
          <namespace>urn:example:b</namespace>
        </module>
      </module-set>
      <content-id>42</content-id>
    </yang-library>
  </data>
</rpc-reply>"""

YANG_LIBRARY_10 = """<rpc-reply message-id="{msg_id}"
  xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <data>
    <modules-state xmlns="urn:ietf:params:xml:ns:yang:ietf-yang-library">
      <module-set-id>7</module-set-id>
      <module>
        <name>ietf-interfaces</name>
        <revision>2018-02-20</revision>
        <namespace>urn:ietf:params:xml:ns:yang:ietf-interfaces</namespace>
        <conformance-type>implement</conformance-type>
      </module>
      <module>
        <name>example-c</name>
        <revision></revision>
        <namespace>urn:example:c</namespace>
        <conformance-type>implement</conformance-type>
        <submodule>
          <name>example-c-sub</name>
          <revision></revision>
        </submodule>
      </module>
    </modules-state>
  </data>
</rpc-reply>"""

GET_SCHEMA_REPLY = """<rpc-reply message-id="{msg_id}"
  xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">
  <data xmlns="urn:ietf:params:xml:ns:yang:ietf-netconf-monitoring">
{text}
  </data>
</rpc-reply>"""

NC_NS = "urn:ietf:params:xml:ns:netconf:base:1.0"
NCM_NS = "urn:ietf:params:xml:ns:yang:ietf-netconf-monitoring"


def ok_reply(msg_id):
    return (
        '<rpc-reply message-id="{}" xmlns="{}"><ok/></rpc-reply>'.format(msg_id, NC_NS)
    ).encode("utf-8")


def data_reply(msg_id, data="<data><top/></data>"):
    return (
        '<rpc-reply message-id="{}" xmlns="{}">{}</rpc-reply>'.format(
            msg_id, NC_NS, data
        )
    ).encode("utf-8")


def unframe(data):
    """Strip the framing of one outbound message"""
    if data.startswith(b"\n#"):
        (msgs, rest) = split_chunked(data, [])
        assert rest == b""
        return msgs[0]
    assert data.endswith(DELIMITER_10)
    return data[: -len(DELIMITER_10)]


class FakeTransport:
    """Stands in for :class:`SshTransport`; nothing runs in the background"""

    def __init__(self, listener):
        self.listener = listener
        self.config = None
        self.password_prompt = None
        self.debug = None
        self.subsystem = None
        self.sent = []
        self.closed = False

    def open(self, config, password_prompt=None, debug=False):
        self.config = config
        self.password_prompt = password_prompt
        self.debug = debug

    def open_subsystem(self, name="netconf"):
        self.subsystem = name

    def write(self, data):
        if self.closed:
            raise SessionClosedException()
        self.sent.append(data)

    def close(self):
        self.closed = True

    def requests(self):
        """Parsed ``<rpc>`` elements sent so far, hello excluded"""
        return [etree.fromstring(unframe(d)) for d in self.sent[1:]]

    def last_request(self):
        return etree.fromstring(unframe(self.sent[-1]))


class EventRecorder:
    def __init__(self, client):
        self.events = []
        for event in Event:
            client.on(event, partial(self._record, event))

    def _record(self, event, *args):
        self.events.append((event, args))

    def of(self, event):
        return [args for (e, args) in self.events if e == event]

    def names(self):
        return [e for (e, _) in self.events]


def open_ssh(client, client_capabilities=None, **kwargs):
    """Start connecting ``client``; the fake transport is ready at once"""
    client.connect(
        SshConfig("10.0.0.1", password="admin"),
        client_capabilities=client_capabilities,
        **kwargs
    )
    client.ssh_ready()
    return client.transport


def establish(client, hello=SERVER_HELLO, client_capabilities=None):
    transport = open_ssh(client, client_capabilities)
    client.data_received(encode(hello, FRAMING_EOM))
    return transport
