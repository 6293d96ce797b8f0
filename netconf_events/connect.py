import logging
import os
import socket
from base64 import b64decode
from threading import Thread

import paramiko

from netconf_events.error import InvalidSSHHostkey, KeyfileError, SessionClosedException
from netconf_events.log import logger

ssh_logger = logging.getLogger("netconf_events.ssh")

_KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


class SshConfig:
    """Parameters of one SSH connection to a NETCONF server

    :param str host: Hostname or IP address

    :param int port: TCP port to initiate the connection

    :param str username: Username to login with; always required

    :param str password: Password to login with; not required if a
                         private key is provided instead

    :param pkey: An already loaded :class:`paramiko.PKey`

    :param str hostkey_b64: base64 encoded hostkey; when given, the
                            server must present exactly this key

    :param int initial_timeout: Seconds to wait when first connecting the socket.

    :param int general_timeout: Seconds to wait for a response from the server after connecting.
    """

    def __init__(
        self,
        host=None,
        port=830,
        username="netconf",
        password=None,
        pkey=None,
        hostkey_b64=None,
        initial_timeout=None,
        general_timeout=None,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.pkey = pkey
        self.hostkey_b64 = hostkey_b64
        self.initial_timeout = initial_timeout
        self.general_timeout = general_timeout

    def __repr__(self):
        return "SshConfig({}@{}:{})".format(self.username, self.host, self.port)


class SshTransport:
    """SSH connection carrying the ``netconf`` subsystem

    :meth:`open` starts one daemon thread which connects, authenticates
    and then reads the channel until it closes. Every call into
    ``listener`` is made from that thread:

    * ``ssh_greeting(greeting)`` and ``ssh_banner(banner)``
    * ``ssh_ready()`` once authenticated; the listener is expected to
      call :meth:`open_subsystem` from there
    * ``data_received(data)`` for every chunk read from the channel
    * ``tick()`` after each read and at least every ``poll_interval``
      seconds
    * ``ssh_error(message, details)`` for connection failures
    * ``ssh_closed()`` exactly once, when the thread ends
    """

    def __init__(self, listener, poll_interval=0.1):
        self.listener = listener
        self.poll_interval = poll_interval
        self.sock = None
        self.transport = None
        self.channel = None
        self.thread = None
        self.config = None
        self._closing = False

    def open(self, config, password_prompt=None, debug=False):
        """Connect in the background

        :param config: :class:`SshConfig` of the server
        :param password_prompt: Called as ``password_prompt(host,
                                username)`` after an authentication
                                failure; returns a new password or
                                ``None`` to give up
        :param bool debug: Log the SSH negotiation on ``netconf_events.ssh``
        """
        self.config = config
        self._closing = False
        self.thread = Thread(target=self._run, args=(config, password_prompt, debug))
        self.thread.daemon = True
        self.thread.start()

    def open_subsystem(self, name="netconf"):
        #  Paramiko opens the channel in blocking mode even when a timeout is given.
        #  The read loop relies on the channel timeout to drive `tick()`.
        channel = self.transport.open_session(timeout=self.config.initial_timeout)
        try:
            channel.invoke_subsystem(name)
        except Exception:
            channel.close()
            raise
        channel.settimeout(self.poll_interval)
        self.channel = channel
        logger.info("SSH subsystem %s entered", name)

    def write(self, data):
        """Send ``data``; flow control is left to the SSH channel"""
        channel = self.channel
        if channel is None or self._closing:
            raise SessionClosedException("SSH channel is not open")
        channel.sendall(data)

    def close(self):
        """Request termination; the read thread reports :meth:`ssh_closed`"""
        self._closing = True
        self._teardown()

    def _run(self, config, password_prompt, debug):
        try:
            self._establish(config, password_prompt, debug)
            self.listener.ssh_ready()
            self._recv_loop()
        except Exception as e:
            if self._closing:
                logger.info("Stopping recv thread due to exception %s", str(e))
            else:
                logger.warning("SSH connection failed: %s", str(e))
                self.listener.ssh_error("SSH ERROR", str(e) or type(e).__name__)
        finally:
            self._teardown()
            self.listener.ssh_closed()

    def _establish(self, config, password_prompt, debug):
        password = config.password
        while True:
            try:
                self._connect(config, password, debug)
                return
            except paramiko.AuthenticationException:
                self._teardown()
                if password_prompt is None or self._closing:
                    raise
                logger.warning(
                    "Authentication failed. Ask user to enter password and retry!"
                )
                password = password_prompt(config.host, config.username)
                if not password:
                    raise

    def _connect(self, config, password, debug):
        sock = socket.socket()
        self.sock = sock
        sock.settimeout(config.initial_timeout)
        sock.connect((config.host, config.port))
        sock.settimeout(config.general_timeout)
        logger.info("SSH CONNECT EVENT %s:%s", config.host, config.port)

        transport = paramiko.transport.Transport(sock)
        self.transport = transport
        if debug:
            transport.set_log_channel(ssh_logger.name)
        transport.start_client(timeout=config.initial_timeout)
        if transport.remote_version:
            self.listener.ssh_greeting(transport.remote_version)

        if config.hostkey_b64:
            expected = _try_load_hostkey_b64(config.hostkey_b64)
            if transport.get_remote_server_key().asbytes() != expected.asbytes():
                raise InvalidSSHHostkey(
                    "Host key of {} does not match".format(config.host)
                )

        try:
            _authenticate(transport, config.username, password, config.pkey)
        finally:
            banner = transport.get_banner()
            if isinstance(banner, bytes):
                banner = banner.decode("utf-8", errors="replace")
            if banner:
                self.listener.ssh_banner(banner)

    def _recv_loop(self):
        while not self._closing:
            channel = self.channel
            if channel is None:
                return
            try:
                data = channel.recv(4096)
            except socket.timeout:
                self.listener.tick()
                continue
            if not data:
                logger.info("SSH END EVENT")
                return
            self.listener.data_received(data)
            self.listener.tick()

    def _teardown(self):
        for closable in (self.channel, self.transport, self.sock):
            if closable is not None:
                try:
                    closable.close()
                except (OSError, EOFError, paramiko.SSHException) as e:
                    logger.debug("Ignoring error on close: %s", str(e))
        self.channel = None
        self.transport = None
        self.sock = None


def _authenticate(transport, username, password, pkey):
    if pkey is not None:
        try:
            transport.auth_publickey(username, pkey)
            return
        except paramiko.AuthenticationException:
            if password is None:
                raise
    if password is None:
        raise paramiko.AuthenticationException(
            "All configured authentication methods failed"
        )
    try:
        transport.auth_password(username, password)
    except paramiko.BadAuthenticationType as e:
        if "keyboard-interactive" not in e.allowed_types:
            raise
        logger.info("Falling back to keyboard-interactive authentication")
        transport.auth_interactive(
            username, lambda title, instructions, prompts: [password for _ in prompts]
        )


def load_private_key(path):
    """Load an SSH private key, trying every supported key type

    :param str path: Key file; a leading ``~`` is expanded
    :raises KeyfileError: if the file cannot be read or parsed
    """
    path = os.path.expanduser(path)
    for cls in _KEY_CLASSES:
        try:
            return cls.from_private_key_file(path)
        except paramiko.SSHException:
            pass
        except OSError as e:
            raise KeyfileError(e.strerror or str(e))
    raise KeyfileError("Unsupported or encrypted private key in {}".format(path))


def _try_load_hostkey_b64(data):
    for cls in _KEY_CLASSES:
        try:
            return cls(data=b64decode(data))
        except paramiko.SSHException:
            pass
    raise InvalidSSHHostkey()
