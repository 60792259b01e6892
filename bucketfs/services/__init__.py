from .base import BaseService, BucketConflictError, MalformedRequestError, ServiceError
from .gateway_service import (
    BatchDeleteResult,
    BucketSubresource,
    GatewayService,
    parse_decoded_content_length,
    parse_max_keys,
)

__all__ = [
    "BaseService",
    "BatchDeleteResult",
    "BucketConflictError",
    "BucketSubresource",
    "GatewayService",
    "MalformedRequestError",
    "ServiceError",
    "parse_decoded_content_length",
    "parse_max_keys",
]
