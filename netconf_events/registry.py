import time

from netconf_events.error import DuplicateMessageId
from netconf_events.log import logger


def format_elapsed(seconds):
    """Render a round-trip time with the coarsest fitting unit"""
    whole = int(seconds)
    ms = int((seconds - whole) * 1000)
    if whole > 3600:
        return "{}h {}min {}sec".format(whole // 3600, whole // 60 % 60, whole % 60)
    if whole > 60:
        return "{}min {}sec".format(whole // 60, whole % 60)
    if whole > 0:
        return "{}sec {}ms".format(whole, ms)
    return "{}ms".format(ms)


class PendingRequest:
    def __init__(self, msg_id, callback, issued, deadline, on_timeout=None):
        self.msg_id = msg_id
        self.callback = callback
        self.issued = issued
        self.deadline = deadline
        self.on_timeout = on_timeout


class RequestRegistry:
    """In-flight requests keyed by message-id

    Timeouts are not driven by timer threads; the owner calls
    :meth:`expire` periodically from the thread that also delivers
    replies, so every mutation happens on one thread of control.

    Entries are removed before their callback runs, so a callback may
    register a new request (even under the same message-id).

    :param on_timeout: called with the message-id of each abandoned request
    :param on_idle: called whenever a removal leaves the registry empty
    :param clock: monotonic time source in seconds
    """

    def __init__(self, on_timeout=None, on_idle=None, clock=time.monotonic):
        self._pending = {}
        self._on_timeout = on_timeout
        self._on_idle = on_idle
        self._clock = clock

    def __len__(self):
        return len(self._pending)

    def __contains__(self, msg_id):
        return msg_id in self._pending

    @property
    def idle(self):
        return not self._pending

    def register(self, msg_id, callback, timeout, on_timeout=None):
        """Track a request until its reply or its timeout

        :param str msg_id: The message-id of the ``<rpc>``
        :param callback: Called with the :class:`RpcReply`; may be ``None``
        :param float timeout: Seconds to wait for the reply
        :param on_timeout: Additionally called with ``msg_id`` on expiry
        :raises DuplicateMessageId: if ``msg_id`` is already pending
        """
        if msg_id in self._pending:
            raise DuplicateMessageId("Message-id {} is already in-use".format(msg_id))
        now = self._clock()
        self._pending[msg_id] = PendingRequest(
            msg_id, callback, now, now + timeout, on_timeout
        )

    def resolve(self, msg_id, reply):
        """Hand ``reply`` to the callback registered for ``msg_id``

        Unknown message-ids are ignored; they belong to requests that
        already timed out or were never issued by this client.

        :return: ``True`` if a pending request was resolved
        """
        request = self._pending.pop(msg_id, None)
        if request is None:
            logger.debug("No pending request for message-id %s", msg_id)
            return False

        reply.elapsed = format_elapsed(self._clock() - request.issued)
        try:
            if request.callback is not None:
                request.callback(reply)
        finally:
            self._check_idle()
        return True

    def expire(self, now=None):
        """Abandon every request whose deadline has passed

        :return: list of the expired message-ids
        """
        if now is None:
            now = self._clock()
        due = [r for r in self._pending.values() if r.deadline <= now]
        expired = []
        for request in due:
            if self._pending.get(request.msg_id) is not request:
                continue  # replaced by a callback of an earlier expiry
            del self._pending[request.msg_id]
            expired.append(request)
            logger.warning("netconf-rpc timeout, message-id %s", request.msg_id)
            if self._on_timeout is not None:
                self._on_timeout(request.msg_id)
            if request.on_timeout is not None:
                request.on_timeout(request.msg_id)
            self._check_idle()
        return [r.msg_id for r in expired]

    def clear(self):
        self._pending.clear()

    def _check_idle(self):
        if not self._pending and self._on_idle is not None:
            self._on_idle()
