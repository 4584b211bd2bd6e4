from __future__ import annotations

from dissect.cstruct import cstruct

regdump_def = """
typedef ULONG       HCELL_INDEX;
typedef ULONGLONG   LARGE_INTEGER;

#define HTYPE_COUNT 2

flag KEY : USHORT {
    COMP_NAME       = 0x0020,
};

flag VALUE : USHORT {
    COMP_NAME       = 0x0001,
};

typedef struct _HBASE_BLOCK {
    ULONG           Signature;
    ULONG           Sequence1;
    ULONG           Sequence2;
    LARGE_INTEGER   TimeStamp;
    ULONG           Major;
    ULONG           Minor;
    ULONG           Type;
    ULONG           Format;
    HCELL_INDEX     RootCell;
    ULONG           Length;
    ULONG           Cluster;
    WCHAR           FileName[32];
    ULONG           Reserved1[99];
    ULONG           CheckSum;
    ULONG           Reserved2[0x37e];
    ULONG           BootType;
    ULONG           BootRecover;
} HBASE_BLOCK;

typedef struct _CHILD_LIST {
    ULONG           Count;
    HCELL_INDEX     List;
} CHILD_LIST;

typedef struct _CM_KEY_NODE {
    CHAR            Signature[2];
    KEY             Flags;
    LARGE_INTEGER   LastWriteTime;
    ULONG           Spare;
    HCELL_INDEX     Parent;
    ULONG           SubKeyCounts[HTYPE_COUNT];
    ULONG           SubKeyLists[HTYPE_COUNT];
    CHILD_LIST      ValueList;
    HCELL_INDEX     Security;
    HCELL_INDEX     Class;
    ULONG           MaxNameLen;
    ULONG           MaxClassLen;
    ULONG           MaxValueNameLen;
    ULONG           MaxValueDataLen;
    ULONG           WorkVar;
    USHORT          NameLength;
    USHORT          ClassLength;
    // CHAR            Name[NameLength];
} CM_KEY_NODE;

typedef struct _CM_INDEX {
    HCELL_INDEX     Cell;
    CHAR            NameHint[4];
} CM_INDEX;

typedef struct _CM_HASH_INDEX {
    HCELL_INDEX     Cell;
    ULONG           HashKey;
} CM_HASH_INDEX;

typedef struct _CM_KEY_INDEX {
    CHAR            Signature[2];
    USHORT          Count;
    HCELL_INDEX     List[Count];
} CM_KEY_INDEX;

typedef struct _CM_KEY_FAST_INDEX {
    CHAR            Signature[2];
    USHORT          Count;
    CM_INDEX        List[Count];
} CM_KEY_FAST_INDEX;

typedef struct _CM_KEY_HASH_INDEX {
    CHAR            Signature[2];
    USHORT          Count;
    CM_HASH_INDEX   List[Count];
} CM_KEY_HASH_INDEX;

typedef struct _CM_KEY_VALUE {
    CHAR            Signature[2];
    USHORT          NameLength;
    ULONG           DataLength;
    HCELL_INDEX     Data;
    ULONG           Type;
    VALUE           Flags;
    USHORT          Spare;
    // CHAR            Name[NameLength];
} CM_KEY_VALUE;

typedef struct _CM_BIG_DATA {
    CHAR            Signature[2];
    USHORT          Count;
    HCELL_INDEX     List;
} CM_BIG_DATA;
"""

c_regdump = cstruct().load(regdump_def)

KEY = c_regdump.KEY
VALUE = c_regdump.VALUE

# Cell offsets are relative to the first hbin, directly after the base block
CELL_BASE = 0x1000
NO_CELL = 0xFFFFFFFF

# Values larger than this are stored in segments (CM_KEY_VALUE_BIG)
BIG_DATA_SEGMENT_SIZE = 16344
DATA_INLINE = 0x80000000

REG_NONE = 0x0
REG_SZ = 0x1
REG_EXPAND_SZ = 0x2
REG_BINARY = 0x3
REG_DWORD = 0x4
REG_DWORD_BIG_ENDIAN = 0x5
REG_LINK = 0x6
REG_MULTI_SZ = 0x7
REG_QWORD = 0xB

# Device property values carry 0xFFFF0000 | DEVPROP_TYPE_* as their type
DEVPROP_MASK = 0xFFFF0000
DEVPROP_TYPE_INT16 = 0x4
DEVPROP_TYPE_UINT16 = 0x5
DEVPROP_TYPE_INT32 = 0x6
DEVPROP_TYPE_UINT32 = 0x7
DEVPROP_TYPE_INT64 = 0x8
DEVPROP_TYPE_UINT64 = 0x9
DEVPROP_TYPE_FILETIME = 0x10
DEVPROP_TYPE_BOOLEAN = 0x11
DEVPROP_TYPE_STRING = 0x12
DEVPROP_TYPE_STRING_INDIRECT = 0x19
DEVPROP_TYPE_STRING_LIST = 0x2000 | DEVPROP_TYPE_STRING

# 2001-01-01 and 2101-01-01 as FILETIME
FILETIME_MIN = 126227808000000000
FILETIME_MAX = 157784544000000000
