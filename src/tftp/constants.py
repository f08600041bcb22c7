from __future__ import annotations

BLOCK_SIZE = 512
HEADER_SIZE = 4
BLOCK_NUMBER_MODULO = 1 << 16

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

DEFAULT_HOST = "127.0.0.1"
ANY_HOST = "0.0.0.0"
DEFAULT_PORT = 69
DEFAULT_TIMEOUT_MS = 2000
DEFAULT_MAX_RETRIES = 5

# Transaction identifiers are drawn from this port range (inclusive)
TID_LOW = 4096
TID_HIGH = 65535
DEFAULT_BIND_ATTEMPTS = 32

RECV_BUFSIZE = 65535
