from .executor import RequestClass, RequestExecutor, RetryPolicy, UpstreamRequest, UpstreamRequestError
from .momence import MomenceClient, new_idempotency_key

__all__ = [
    "MomenceClient",
    "RequestClass",
    "RequestExecutor",
    "RetryPolicy",
    "UpstreamRequest",
    "UpstreamRequestError",
    "new_idempotency_key",
]
