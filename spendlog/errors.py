class SpendlogError(Exception):
    pass


class ValidationError(SpendlogError, ValueError):
    pass


class PersistenceError(SpendlogError, OSError):
    def __init__(self, target: str, reason: str = ""):
        self.target = target
        self.reason = reason
        message = f"Could not save {target}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InsightError(SpendlogError):
    pass
