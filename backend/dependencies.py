from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, Request, status

from gateway import BackendError
from services.error_classifier import classify_error
from services.order_lifecycle_service import (
    ActionNotAllowed,
    OrderLifecycleOrchestrator,
    OrderLocked,
    ResolutionError,
    TabLimitReached,
    TabNotFound,
)


def get_orchestrator(request: Request) -> OrderLifecycleOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Backend session is not open",
        )
    return orchestrator


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except TabNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (TabLimitReached, OrderLocked) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ActionNotAllowed as exc:
        code = status.HTTP_403_FORBIDDEN if exc.privilege else status.HTTP_409_CONFLICT
        raise HTTPException(status_code=code, detail=str(exc)) from exc
    except (ResolutionError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except BackendError as exc:
        report = classify_error(exc)
        detail = report.generic.summary if report.generic else exc.message
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail) from exc
