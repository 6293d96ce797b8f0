CAP_NETCONF_10 = "urn:ietf:params:netconf:base:1.0"
CAP_NETCONF_11 = "urn:ietf:params:netconf:base:1.1"

DEFAULT_CLIENT_CAPABILITIES = [CAP_NETCONF_10, CAP_NETCONF_11]

# (canonical tag, URI prefix); servers vary the minor version formatting
CAPABILITY_TABLE = [
    ("base:1.0", "urn:ietf:params:netconf:base:1.0"),
    ("base:1.1", "urn:ietf:params:netconf:base:1.1"),
    ("candidate", "urn:ietf:params:netconf:capability:candidate:1.0"),
    ("confirmed-commit", "urn:ietf:params:netconf:capability:confirmed-commit:1."),
    ("rollback-on-error", "urn:ietf:params:netconf:capability:rollback-on-error:1.0"),
    ("notification:1.0", "urn:ietf:params:netconf:capability:notification:1.0"),
    ("notification:2.0", "urn:ietf:params:netconf:capability:notification:2.0"),
    ("interleave", "urn:ietf:params:netconf:capability:interleave:1.0"),
    ("validate", "urn:ietf:params:netconf:capability:validate:1."),
    ("startup", "urn:ietf:params:netconf:capability:startup:1.0"),
    ("with-defaults", "urn:ietf:params:netconf:capability:with-defaults:1.0"),
    ("yang-library:1.0", "urn:ietf:params:netconf:capability:yang-library:1.0"),
    ("yang-library:1.1", "urn:ietf:params:netconf:capability:yang-library:1.1"),
    ("netconf-monitoring", "urn:ietf:params:xml:ns:yang:ietf-netconf-monitoring"),
    ("netconf-nmda", "urn:ietf:params:xml:ns:yang:ietf-netconf-nmda"),
]

NAMESPACES = {
    "nc": "urn:ietf:params:xml:ns:netconf:base:1.0",
    "notif": "urn:ietf:params:xml:ns:netconf:notification:1.0",
    "yanglib": "urn:ietf:params:xml:ns:yang:ietf-yang-library",
    "ncm": "urn:ietf:params:xml:ns:yang:ietf-netconf-monitoring",
}

FRAMING_EOM = "1.0"
FRAMING_CHUNKED = "1.1"

DELIMITER_10 = b"]]>]]>"
DELIMITER_11 = b"\n##\n"

DELIMITER_10_LEN = len(DELIMITER_10)
DELIMITER_11_LEN = len(DELIMITER_11)

MAX_CHUNK_SIZE = 4294967295

# message-id counter start, keeps generated ids clear of small caller ids
REQUEST_ID_SEED = 10000
