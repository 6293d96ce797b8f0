import re

from netconf_events.log import logger
from netconf_events.error import FramingError
from netconf_events.constants import (
    FRAMING_EOM,
    FRAMING_CHUNKED,
    DELIMITER_10,
    DELIMITER_11,
    DELIMITER_10_LEN,
    DELIMITER_11_LEN,
    MAX_CHUNK_SIZE,
)


class FramingCodec:
    """Incremental :rfc:`6242` decoder for one inbound byte stream

    Holds the bytes not yet resolved into a message and, in chunked
    mode, the chunks of the message being assembled. ``mode`` may be
    switched between two messages returned by :meth:`feed`; bytes
    that were not consumed yet are then decoded with the new mode.
    """

    def __init__(self, mode=FRAMING_EOM):
        self.mode = mode
        self.buf = b""
        self.partial_msg = []
        self.pos = 0

    def reset(self):
        self.mode = FRAMING_EOM
        self.buf = b""
        del self.partial_msg[:]
        self.pos = 0

    def set_mode(self, mode):
        if mode not in (FRAMING_EOM, FRAMING_CHUNKED):
            raise NotImplementedError(
                "Unsupported message framing mode {}".format(mode)
            )
        if mode != self.mode:
            logger.debug("Updating parsing mode to %s", mode)
            self.mode = mode
            self.pos = 0
            del self.partial_msg[:]

    def feed(self, data):
        """Append ``data`` and yield every message completed by it

        :param bytes data: Bytes as received from the transport
        """
        self.buf += data

        while True:
            mode = self.mode
            if mode == FRAMING_EOM:
                (msgs, self.buf, self.pos) = split_eom(self.buf, self.pos)
            elif mode == FRAMING_CHUNKED:
                (msgs, self.buf) = split_chunked(
                    self.buf, self.partial_msg, max_messages=1
                )
            else:
                raise NotImplementedError(
                    "Unsupported message framing mode {}".format(mode)
                )

            if not msgs:
                return

            for (i, msg) in enumerate(msgs):
                logger.debug("Received message: %s", msg)
                yield msg
                if self.mode != mode:
                    rest = msgs[i + 1 :]
                    if rest:
                        self.buf = (
                            b"".join(m + DELIMITER_10 for m in rest) + self.buf
                        )
                    break


def split_eom(buf, pos=0):
    """End-of-Message decode of ``buf``

    Splits on the rightmost delimiter; everything after it stays in
    the buffer. ``pos`` is the offset up to which ``buf`` is already
    known to hold no delimiter.

    :return: tuple(list of messages, remaining buffer, new ``pos``)
    """
    # `pos` trick: do not again search the part of memory that has already been searched
    index = buf.rfind(DELIMITER_10, max(0, pos - DELIMITER_10_LEN + 1))
    if index == -1:
        return ([], buf, len(buf))

    msgs = [m for m in buf[:index].split(DELIMITER_10) if m.strip()]
    return (msgs, buf[index + DELIMITER_10_LEN :], 0)


# RegEx matching chunk headers (version 1.1).
START_OF_CHUNK_R = re.compile(b"\n#(\\d+)\n")
# Anything that may still grow into a chunk header or end-of-chunks.
PARTIAL_MARKER_R = re.compile(b"\n(#(#|\\d+)?)?\\Z")
CHUNK_R_LEN_MAX = len(b"\n#4294967295\n")  # RFC 6242


def split_chunked(buf, partial_msg, max_messages=None):
    """Chunked-framing decode of ``buf``

    A chunk is only consumed once its header and its complete payload
    have arrived. Completed chunks are appended to ``partial_msg``,
    which is emptied whenever the end-of-chunks marker completes a
    message.

    :return: tuple(list of messages, remaining buffer)
    """
    msgs = []

    while buf:
        if max_messages is not None and len(msgs) >= max_messages:
            break

        m = START_OF_CHUNK_R.match(buf)
        if m:
            header_length = m.end()
            if header_length > CHUNK_R_LEN_MAX:
                raise FramingError(
                    "Chunk header is too long ({} octets)".format(header_length)
                )

            chunk_length = int(m.group(1))
            if chunk_length == 0 or chunk_length > MAX_CHUNK_SIZE:
                raise FramingError(
                    "Length of chunk ({} octets) is out-of-range 1..{}".format(
                        chunk_length, MAX_CHUNK_SIZE
                    )
                )

            end = header_length + chunk_length
            if len(buf) < end:
                break  # chunk payload not complete yet

            partial_msg.append(buf[header_length:end])
            buf = buf[end:]

        elif buf.startswith(DELIMITER_11):
            if partial_msg:
                msgs.append(b"".join(partial_msg))
                del partial_msg[:]
            buf = buf[DELIMITER_11_LEN:]

        elif PARTIAL_MARKER_R.match(buf):
            if len(buf) >= CHUNK_R_LEN_MAX:
                raise FramingError(
                    "Chunk header is too long ({} octets)".format(len(buf))
                )
            break  # not enough data received so far

        else:
            raise FramingError(
                "Expected 'chunk-header' or 'end-of-chunks' pattern not found"
            )

    return (msgs, buf)


def encode(msg, mode):
    """Frame an outgoing message

    :param msg: The message; text is encoded as UTF-8
    :param str mode: :data:`FRAMING_EOM` or :data:`FRAMING_CHUNKED`
    :rtype: bytes
    """
    if isinstance(msg, str):
        msg = msg.encode("utf-8")

    if mode == FRAMING_EOM:
        return msg + DELIMITER_10
    elif mode == FRAMING_CHUNKED:
        header = "\n#{}\n".format(len(msg)).encode("ascii")
        return header + msg + DELIMITER_11
    raise NotImplementedError("Unsupported message framing mode {}".format(mode))
