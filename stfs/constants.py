# Package magic (big-endian u32 at offset 0)
MAGIC_CON = 0x434F4E20   # "CON " console-signed (saves, profiles)
MAGIC_LIVE = 0x4C495645  # "LIVE" Live-signed (downloads)
MAGIC_PIRS = 0x50495253  # "PIRS" Microsoft-signed (on-disc content, updates)

KNOWN_MAGICS = (MAGIC_CON, MAGIC_LIVE, MAGIC_PIRS)

# Buffers of this length or longer can hold the full fixed header
MIN_PACKAGE_SIZE = 0x971A


# Content types (u32 at HDR_CONTENT_TYPE)
CONTENT_SAVEGAME = 0x1
CONTENT_DLC = 0x2
CONTENT_AVATAR_ITEM = 0x9000
CONTENT_PROFILE = 0x10000
CONTENT_GAMERPIC = 0x20000
CONTENT_THEME = 0x30000
CONTENT_TITLE_UPDATE = 0xB0000
CONTENT_ARCADE_GAME = 0xD0000


# Fixed header offsets
HDR_SIGNATURE_START = 0x4
HDR_SIGNATURE_END = 0x22C
HDR_CONTENT_ID = 0x32C
HDR_CONTENT_ID_LEN = 0x14
HDR_HEADER_SIZE = 0x340
HDR_CONTENT_TYPE = 0x344
HDR_TITLE_ID = 0x360
HDR_DISPLAY_NAME = 0x411
HDR_DISPLAY_NAME_LEN = 0x900
HDR_DESCRIPTION = 0xD11
HDR_DESCRIPTION_LEN = 0x900
HDR_PUBLISHER = 0x1611
HDR_PUBLISHER_LEN = 0x80
HDR_TITLE_NAME = 0x1691
HDR_TITLE_NAME_LEN = 0x80
HDR_PACKAGE_THUMB_SIZE = 0x1712
HDR_TITLE_THUMB_SIZE = 0x1716
HDR_PACKAGE_THUMB = 0x171A
HDR_TITLE_THUMB = 0x571A
THUMB_MAX_SIZE = 0x4000

# Volume descriptor
VD_OFFSET = 0x379
VD_BLOCK_SEPARATION = VD_OFFSET + 0x2
VD_FILE_TABLE_BLOCK_COUNT = VD_OFFSET + 0x3  # u16 little-endian
VD_FILE_TABLE_BLOCK = VD_OFFSET + 0x5        # u24 little-endian
VD_ALLOCATED_BLOCKS = VD_OFFSET + 0x1C
VD_UNALLOCATED_BLOCKS = VD_OFFSET + 0x20


# Block layout
DATA_BASE = 0xC000
BLOCK_SIZE = 0x1000
HASH_RECORD_SIZE = 0x18
BLOCKS_PER_HASH_TABLE = 0xAA
BLOCKS_PER_L1_TABLE = 0x70E4
HASH_RECORD_NEXT = 0x15
HASH_RECORD_STATUS = 0x14
HASH_RECORD_SHA1_LEN = 0x14

BLOCK_TERMINATOR = 0xFFFFFF
MAX_BLOCK = 0xFFFFFF


# File table records
FILE_RECORD_SIZE = 0x40
FILE_NAME_FIELD = 0x28
FE_NAME = 0x00
FE_NAME_LENGTH = 0x28
FE_BLOCK_COUNT = 0x29
FE_STARTING_BLOCK = 0x2F
FE_PARENT = 0x32
FE_FILE_SIZE = 0x34
FE_CREATED = 0x38
FE_ACCESSED = 0x3C

# Entry flags (top two bits of FE_NAME_LENGTH, shifted down)
EFLAG_CONSECUTIVE = 1 << 0
EFLAG_DIRECTORY = 1 << 1
NAME_LENGTH_MASK = 0x3F

ROOT_PARENT = 0xFFFF
