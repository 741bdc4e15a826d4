# slotbook/services/base.py
"""
Base Service Pattern for slotbook

Provides common functionality for all service classes including:
- Logging
- An injectable clock
- Performance monitoring
"""

from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Optional, TypeVar, cast

from ..core.result import Err
from ..domain.entities import utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """
    Base class for all service layer components.

    Services never read the wall clock directly; they call ``self.now()`` so
    tests can pin time.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or utc_now
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        return self.clock()

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("create_booking")
            def create_booking(self, data):
                # Method implementation

        An ``Err`` result counts as an error outcome, labelled with the
        carried exception's type, the same as a raised exception.
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                error_type: Optional[str] = None
                try:
                    result = func(self, *args, **kwargs)
                    if isinstance(result, Err):
                        error_type = type(result.error).__name__
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator
