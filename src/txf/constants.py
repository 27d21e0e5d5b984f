from __future__ import annotations

import struct

MAGIC_SEND = 0x53454E44  # "SEND"
MAGIC_RCVD = 0x72637664  # "rcvd"

# magic, file_size, file_name, terminator, reserved
HEADER_FORMAT = "!II20sB3s"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
FILENAME_LEN = 20
MAX_NAME_CHARS = FILENAME_LEN - 1

BLOCK_SIZE = 1024
MAX_FILE_SIZE = 0x7FFFFFFF

PATH_DELIMITER = "/"
PLACEHOLDER = "_"

LISTEN_BACKLOG = 1
DEFAULT_TIMEOUT_MS = 0
