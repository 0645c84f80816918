class BrizzoError(Exception):
    pass


class ApiError(BrizzoError):
    """部屋サービスへのリクエストが失敗した"""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RoomNotFound(ApiError):
    """移動先の部屋が存在しない、または現在の部屋から移動できない"""

    def __init__(self, message: str = "not found", status: int | None = 404):
        super().__init__(message, status)


class AlreadyExists(ApiError):
    pass


class InvalidRequest(ApiError):
    pass


class ExplorationLimitExceeded(BrizzoError):
    pass
