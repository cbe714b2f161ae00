import asyncio
import logging
import json
import time
import traceback
from trailverse.core.utils import utc_now
from typing import Dict, Any, Optional
from functools import wraps

class StructuredLogger:
    """Event-style logger: each line is {timestamp, level, event, data}"""

    def __init__(self, name: str = "trailverse"):
        self.logger = logging.getLogger(name)

    def log_ai_interaction(self,
                          provider: str,
                          model: str,
                          input_tokens: int,
                          output_tokens: int,
                          user_id: Optional[str] = None,
                          anonymous_id: Optional[str] = None,
                          **kwargs):
        self.info("ai_interaction", {
            "provider": provider,
            "model": model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "user_id": user_id,
            "anonymous_id": anonymous_id,
            **kwargs
        })

    def log_model_fallback(self, provider: str, model: str, reason: str):
        """A ladder candidate was skipped"""
        self.warning("model_fallback", {
            "provider": provider,
            "model": model,
            "reason": reason,
        })

    def log_error(self,
                  error: Exception,
                  context: Dict[str, Any] = None,
                  user_id: Optional[str] = None,
                  request_id: Optional[str] = None):
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "user_id": user_id,
            "request_id": request_id,
            "context": context or {}
        }
        self.error("error_occurred", error_data)

    def log_performance_metric(self,
                              operation: str,
                              duration: float,
                              success: bool = True,
                              **kwargs):
        self.info("performance_metric", {
            "operation": operation,
            "duration": duration,
            "success": success,
            **kwargs
        })

    def _emit(self, level: int, event: str, data: Optional[Dict[str, Any]]):
        self.logger.log(level, json.dumps({
            "timestamp": utc_now().isoformat(),
            "level": logging.getLevelName(level),
            "event": event,
            "data": data or {}
        }, ensure_ascii=False, default=str))

    def info(self, event: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, event, data)

    def warning(self, event: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, event, data)

    def error(self, event: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.ERROR, event, data)

def monitor_performance(operation_name: str = None):
    """Log duration and outcome of the wrapped call"""
    def decorator(func):
        operation = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                structured_logger.log_performance_metric(operation=operation, duration=duration, success=False)
                structured_logger.log_error(e, {
                    "operation": operation,
                    "duration": duration,
                    "traceback": traceback.format_exc(),
                })
                raise
            structured_logger.log_performance_metric(
                operation=operation,
                duration=time.time() - start_time,
                success=True
            )
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                structured_logger.log_performance_metric(operation=operation, duration=duration, success=False)
                structured_logger.log_error(e, {
                    "operation": operation,
                    "duration": duration,
                    "traceback": traceback.format_exc(),
                })
                raise
            structured_logger.log_performance_metric(
                operation=operation,
                duration=time.time() - start_time,
                success=True
            )
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator

structured_logger = StructuredLogger()
