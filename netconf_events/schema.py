import os
from functools import partial

from netconf_events import rpc
from netconf_events.constants import NAMESPACES
from netconf_events.error import ClientError
from netconf_events.events import Event
from netconf_events.log import logger


class YangModule:
    """A module (or submodule) listed by the YANG library

    :ivar str name: Module name
    :ivar str revision: Revision date, ``None`` if the server has none
    :ivar str namespace: XML namespace; submodules have none
    :ivar str location: Optional download URL
    :ivar list submodules: :class:`YangModule` entries of the submodules
    """

    def __init__(
        self, name, revision=None, namespace=None, location=None, submodules=()
    ):
        self.name = name
        self.revision = revision or None
        self.namespace = namespace
        self.location = location
        self.submodules = list(submodules)

    def __repr__(self):
        if self.revision:
            return "YangModule({}@{})".format(self.name, self.revision)
        return "YangModule({})".format(self.name)

    def __eq__(self, other):
        return (
            isinstance(other, YangModule)
            and self.name == other.name
            and self.revision == other.revision
        )

    def __hash__(self):
        return hash((self.name, self.revision))

    def filename(self, revisions=True):
        if revisions and self.revision:
            return "{}@{}.yang".format(self.name, self.revision)
        return "{}.yang".format(self.name)


def _text(ele, path):
    found = ele.xpath(path, namespaces=NAMESPACES)
    if found and found[0].text:
        return found[0].text.strip()
    return None


def _module_from_ele(ele):
    submodules = [
        YangModule(
            _text(sub, "yanglib:name"),
            revision=_text(sub, "yanglib:revision"),
            location=_text(sub, "yanglib:location | yanglib:schema"),
        )
        for sub in ele.xpath("yanglib:submodule", namespaces=NAMESPACES)
    ]
    return YangModule(
        _text(ele, "yanglib:name"),
        revision=_text(ele, "yanglib:revision"),
        namespace=_text(ele, "yanglib:namespace"),
        location=_text(ele, "yanglib:location | yanglib:schema"),
        submodules=submodules,
    )


def _flatten(modules):
    queue = []
    for module in modules:
        queue.append(module)
        queue.extend(module.submodules)
    return queue


def modules_from_library_11(data):
    """Flat module list of an :rfc:`8525` ``<yang-library>``

    :param data: The ``<data>`` element of the ``<get>`` reply
    :return: list of :class:`YangModule`, or ``None`` if ``data`` holds
             no module-set
    """
    module_sets = data.xpath(
        "yanglib:yang-library/yanglib:module-set", namespaces=NAMESPACES
    )
    if not module_sets:
        return None

    modules = []
    for module_set in module_sets:
        for kind in ("yanglib:module", "yanglib:import-only-module"):
            modules.extend(
                _module_from_ele(m)
                for m in module_set.xpath(kind, namespaces=NAMESPACES)
            )
    return _flatten(modules)


def modules_from_library_10(data):
    """Flat module list of an :rfc:`7895` ``<modules-state>``

    :param data: The ``<data>`` element of the ``<get>`` reply
    :return: list of :class:`YangModule`, or ``None`` if ``data`` holds
             no module
    """
    modules = data.xpath(
        "yanglib:modules-state/yanglib:module", namespaces=NAMESPACES
    )
    if not modules:
        return None
    return _flatten(_module_from_ele(m) for m in modules)


class SchemaFetcher:
    """Downloads every schema listed in the server's YANG library

    Only one ``<get-schema>`` is in flight at a time. A module that
    fails (rpc-error, missing ``<data>``, timeout, write error) is
    reported as ``netconfError`` and the download continues with the
    next module.

    :param client: The connected :class:`NetconfClient`
    :param str folder: Directory to store ``.yang`` files in; ``None``
                       to only emit ``yangDefinition`` events
    :param bool revisions: Include the revision in the file names
    """

    def __init__(self, client, folder=None, revisions=True, timeout=300):
        self.client = client
        self.folder = folder
        self.revisions = revisions
        self.timeout = timeout
        self.queue = []
        self.total = 0

    def start(self):
        capabilities = self.client.capabilities
        if "yang-library:1.1" in capabilities:
            version = "1.1"
        elif "yang-library:1.0" in capabilities:
            version = "1.0"
        else:
            raise ClientError("Server does not announce the yang-library capability")

        request = rpc.get(
            filter=rpc.yang_library_filter(version), msg_id="get-yang-library"
        )
        self.client.rpc(request, 10, partial(self._library_received, version))

    def _library_received(self, version, reply):
        if reply.is_error:
            self.client.emit(
                Event.NETCONF_ERROR,
                "yang-library:{} request failed: {}".format(
                    version, reply.error_message
                ),
                reply.xml,
            )
            return

        data = reply.data()
        modules = None
        if data is not None:
            if version == "1.1":
                modules = modules_from_library_11(data)
            else:
                modules = modules_from_library_10(data)

        if modules is None:
            self.client.emit(
                Event.NETCONF_ERROR,
                "Malformed yang-library:{} response".format(version),
                reply.xml,
            )
            return

        logger.info("YANG library lists %d modules: %s", len(modules), modules)
        self.queue = modules
        self.total = len(modules)
        self._fetch_next()

    def _fetch_next(self):
        while self.queue:
            module = self.queue.pop()
            index = self.total - len(self.queue)
            if not module.name:
                logger.warning("Skipping YANG library entry without name")
                continue

            logger.debug("Requesting schema %r (%d/%d)", module, index, self.total)
            self.client.rpc(
                rpc.get_schema(module.name, module.revision),
                self.timeout,
                partial(self._schema_received, module, index),
                on_timeout=partial(self._schema_timeout, module),
            )
            return

        logger.info("YANG library download finished, %d modules", self.total)

    def _schema_received(self, module, index, reply):
        try:
            self._handle_schema(module, index, reply)
        finally:
            self._fetch_next()

    def _schema_timeout(self, module, _msg_id):
        self.client.emit(
            Event.NETCONF_ERROR,
            "get-schema {} timed out".format(module.name),
            None,
        )
        self._fetch_next()

    def _handle_schema(self, module, index, reply):
        if reply.is_error:
            self.client.emit(
                Event.NETCONF_ERROR,
                "get-schema {} failed: {}".format(module.name, reply.error_message),
                reply.xml,
            )
            return

        data = reply.data()
        if data is None:
            self.client.emit(
                Event.NETCONF_ERROR,
                "Malformed get-schema response for {}".format(module.name),
                reply.xml,
            )
            return

        # entity references are resolved by the XML parser already
        yang = "".join(data.itertext()).strip()

        if self.folder:
            path = os.path.join(self.folder, module.filename(self.revisions))
            try:
                with open(path, "w", encoding="utf-8") as f:
                    f.write(yang)
            except OSError as e:
                self.client.emit(
                    Event.NETCONF_ERROR,
                    "Cannot write {}: {}".format(path, e.strerror or str(e)),
                    None,
                )

        self.client.emit(
            Event.YANG_DEFINITION, module.name, module.revision, yang, index, self.total
        )
