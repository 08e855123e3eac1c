"""Struct tags of the Bolt protocol messages."""

import enum


class MessageTag(enum.IntEnum):
    """Tag byte that identifies each Bolt message struct."""

    HELLO = 0x01
    GOODBYE = 0x02
    RESET = 0x0F
    RUN = 0x10
    BEGIN = 0x11
    COMMIT = 0x12
    ROLLBACK = 0x13
    DISCARD_ALL = 0x2F
    DISCARD_N = 0x2F  # Name used from Bolt 4.0 on
    PULL_ALL = 0x3F
    PULL_N = 0x3F  # Name used from Bolt 4.0 on
    SUCCESS = 0x70
    RECORD = 0x71
    IGNORED = 0x7E
    FAILURE = 0x7F