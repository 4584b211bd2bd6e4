class Error(Exception):
    pass


class InvalidHiveError(Error):
    pass


class MalformedHiveError(Error):
    pass
