class TcExecutionError(RuntimeError):
    """Raised when the tc binary could not be run or exited non-zero"""


class StatsDecodeError(ValueError):
    """Raised when structured (tc -j) output cannot be decoded"""
