"""
IPROTO protocol constants.

Keep these in one place to avoid magic numbers in message handling.
"""

from __future__ import annotations

from enum import IntEnum


class Keys(IntEnum):
    """Header and body map keys."""

    REQUEST_TYPE = 0x00
    CODE = 0x00
    SYNC = 0x01
    SCHEMA_ID = 0x05

    SPACE_ID = 0x10
    INDEX_ID = 0x11
    LIMIT = 0x12
    OFFSET = 0x13
    ITERATOR = 0x14

    KEY = 0x20
    TUPLE = 0x21
    FUNCTION_NAME = 0x22
    USER_NAME = 0x23
    EXPR = 0x27
    OPERATIONS = 0x28

    DATA = 0x30
    ERROR_24 = 0x31
    METADATA = 0x32

    SQL_TEXT = 0x40
    SQL_BIND = 0x41
    SQL_INFO = 0x42
    STMT_ID = 0x43

    ERROR = 0x52


class RequestType(IntEnum):
    """Request type codes sent in the REQUEST_TYPE header field."""

    SELECT = 1
    INSERT = 2
    REPLACE = 3
    UPDATE = 4
    DELETE = 5
    AUTHENTICATE = 7
    EVALUATE = 8
    UPSERT = 9
    CALL = 10
    EXECUTE = 11
    PREPARE = 13
    PING = 64


class IteratorType(IntEnum):
    """Index iterator types accepted by SELECT."""

    EQ = 0
    REQ = 1
    ALL = 2
    LT = 3
    LE = 4
    GE = 5
    GT = 6
    BITS_ALL_SET = 7
    BITS_ANY_SET = 8
    BITS_ALL_NOT_SET = 9
    OVERLAPS = 10
    NEIGHBOR = 11


# Response status
OK = 0x00
ERROR_TYPE_MASK = 0x8000

# SQL_INFO map keys
SQL_INFO_ROW_COUNT = 0x00
SQL_INFO_AUTOINCREMENT_IDS = 0x01

# METADATA entry keys
FIELD_NAME = 0x00
FIELD_TYPE = 0x01

# System catalog
VSPACE_ID = 281
VINDEX_ID = 289
PRIMARY_INDEX = 0
SPACE_NAME_INDEX = 2
INDEX_NAME_INDEX = 2

DEFAULT_LIMIT = 0xFFFFFFFF

# Authentication mechanism
CHAP_SHA1 = "chap-sha1"
