from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    UNREACHABLE = 1
    INVALID_CONFIG = 2
