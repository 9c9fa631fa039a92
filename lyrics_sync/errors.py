class LyricsSyncError(Exception):
    pass


class SessionClosed(LyricsSyncError, RuntimeError):
    pass


class UnsupportedFormat(LyricsSyncError, ValueError):
    pass
