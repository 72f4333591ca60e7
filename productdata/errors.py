"""
Error types for the Product Data Service.

This module defines all exception types raised by the core:
- ProductDataError: Base exception
- ValidationError: Caller input is structurally invalid
- InvalidFilterError: Malformed $filter / $orderby expression
- NotFoundError: A point lookup found nothing
- StoreError: The entry store failed to read or write
- BatchUpsertError: A batch group failed after earlier groups committed
- NoStoreError: No entry store is configured

Invariants:
    - All errors inherit from ProductDataError
    - Validation errors are never retried
    - Store errors never leak through the HTTP layer verbatim
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ProductDataError(Exception):
    """Base exception for all Product Data Service errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PRODUCT_DATA_ERROR"
        self.details = details or {}


class ValidationError(ProductDataError):
    """Caller input is invalid.

    Raised when:
    - A SKU entry has an empty sku or product list
    - $top / $skip is not a non-negative integer
    - $count and $inlinecount=allpages are combined
    - A product id is out of bounds
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class InvalidFilterError(ValidationError):
    """A filter or ordering expression could not be parsed.

    Attributes:
        expression: The offending expression
        position: Character offset where parsing failed (if known)
    """

    def __init__(
        self,
        message: str,
        expression: str = "",
        position: Optional[int] = None,
    ) -> None:
        super().__init__(message, field_name="$filter", code="INVALID_FILTER")
        self.details.update({"expression": expression, "position": position})
        self.expression = expression
        self.position = position


class NotFoundError(ProductDataError):
    """Resource not found.

    Raised when:
    - No SKU owns the requested product id
    - The SKU to delete does not exist
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class StoreError(ProductDataError):
    """The entry store failed to execute a read or write."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: str = "STORE_ERROR",
    ) -> None:
        super().__init__(message, code=code, details={"operation": operation})
        self.operation = operation


class BatchUpsertError(StoreError):
    """A batch upsert group failed.

    Groups that were written before the failure stay written; the caller must
    treat the store as partially updated.

    Attributes:
        committed: Number of entries durably written before the failure
        failed_group: Zero-based index of the group that failed
        total: Number of entries in the whole batch
    """

    def __init__(
        self,
        message: str,
        committed: int,
        failed_group: int,
        total: int,
    ) -> None:
        super().__init__(message, operation="upsert_batch", code="BATCH_UPSERT_ERROR")
        self.details.update(
            {"committed": committed, "failed_group": failed_group, "total": total}
        )
        self.committed = committed
        self.failed_group = failed_group
        self.total = total


class NoStoreError(ProductDataError):
    """No entry store is configured."""

    def __init__(self, message: str = "no database connection") -> None:
        super().__init__(message, code="NO_STORE")
