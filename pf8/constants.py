import struct


# Magic tags (3 bytes, no terminator)
PF6_MAGIC = b"pf6"
PF8_MAGIC = b"pf8"

# Fixed header offsets
OFF_INDEX_SIZE = 0x03
OFF_INDEX_DATA = 0x07    # index region (and hashed region) starts at entry_count
OFF_ENTRIES = 0x0B
OFF_SIZE_TABLE_BASE = 0x0F  # size-table entries are relative to this address

HEADER_SIZE = OFF_INDEX_DATA

# Little-endian field layouts
U32 = struct.Struct("<I")
U64 = struct.Struct("<Q")
ENTRY_TAIL = struct.Struct("<III")  # reserved zero, offset, size

# name_length + reserved + offset + size
ENTRY_FIXED_SIZE = 16

MAX_U32 = 0xFFFFFFFF
MAX_NAME_LENGTH = 4096  # bytes, utf-8

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024  # 4 MiB

# Already-compressed media gains nothing from the XOR pass
UNENCRYPTED_FILTER = ("mp4", "flv")

NAME_ENCODING = "utf-8"
ARCHIVE_SEP = "\\"
