from dissect.regdump.exceptions import Error, InvalidHiveError, MalformedHiveError
from dissect.regdump.hive import RegistryHive
from dissect.regdump.walk import DumpOptions, dump

__all__ = [
    "DumpOptions",
    "Error",
    "InvalidHiveError",
    "MalformedHiveError",
    "RegistryHive",
    "dump",
]
