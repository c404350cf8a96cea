class LifecycleError(Exception):
    """Base for local failures raised before or around a backend call."""


class ResolutionError(LifecycleError):
    """Customer, profile or invoice could not be resolved; nothing was sent."""


class ActionNotAllowed(LifecycleError):
    def __init__(self, message: str, privilege: bool = False):
        super().__init__(message)
        self.privilege = privilege


class AllocationError(LifecycleError, ValueError):
    def __init__(self, message: str, item_code: str = "", idx: int | None = None):
        super().__init__(message)
        self.item_code = item_code
        self.idx = idx


class OverAllocationError(AllocationError):
    pass


class ReturnSelectionError(LifecycleError, ValueError):
    pass


class TabNotFound(LifecycleError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Tab not found"


class TabLimitReached(LifecycleError):
    pass


class OrderLocked(LifecycleError):
    pass
