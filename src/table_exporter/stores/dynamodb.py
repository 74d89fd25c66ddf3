"""DynamoDB-backed source and destination stores using boto3."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from table_exporter.core.errors import SourceRequestRejected, SourceUnavailable
from table_exporter.core.models import Record
from table_exporter.stores.base import BatchWriteOutcome, ScanResult

logger = logging.getLogger(__name__)

# Error codes meaning the request itself is wrong; everything else is treated
# as the service being unavailable.
_REJECTED_CODES = {
    "ValidationException",
    "ResourceNotFoundException",
    "AccessDeniedException",
    "UnrecognizedClientException",
}

MAX_BATCH_WRITE_ITEMS = 25


def _resource(region: Optional[str], endpoint_url: Optional[str]):
    kwargs: Dict[str, Any] = {}
    if region:
        kwargs["region_name"] = region
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    return boto3.resource("dynamodb", **kwargs)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class DynamoDbSourceStore:
    """Scan access to a DynamoDB table via the boto3 resource layer.

    Items come back deserialized (numbers as Decimal, sets as set).
    """

    def __init__(self, region: Optional[str] = None, endpoint_url: Optional[str] = None, resource=None):
        self.resource = resource or _resource(region, endpoint_url)

    def scan(
        self,
        location: str,
        limit: int,
        filter_expression: Optional[str] = None,
        filter_names: Optional[Dict[str, str]] = None,
        filter_values: Optional[Dict[str, Any]] = None,
        continuation_token: Any = None,
    ) -> ScanResult:
        params: Dict[str, Any] = {"Limit": limit}
        if filter_expression:
            params["FilterExpression"] = filter_expression
        if filter_names:
            params["ExpressionAttributeNames"] = filter_names
        if filter_values:
            params["ExpressionAttributeValues"] = filter_values
        if continuation_token is not None:
            params["ExclusiveStartKey"] = continuation_token

        try:
            response = self.resource.Table(location).scan(**params)
        except ClientError as e:
            code = _error_code(e)
            logger.error("Scan of %s failed: %s", location, code or e)
            if code in _REJECTED_CODES:
                raise SourceRequestRejected(f"scan of {location} rejected: {e}") from e
            raise SourceUnavailable(f"scan of {location} failed: {e}") from e
        except BotoCoreError as e:
            logger.error("Scan of %s failed: %s", location, e)
            raise SourceUnavailable(f"scan of {location} failed: {e}") from e

        return ScanResult(
            items=response.get("Items", []),
            continuation_token=response.get("LastEvaluatedKey"),
        )


class DynamoDbDestinationStore:
    """BatchWriteItem access to a DynamoDB table."""

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_batch_size: int = MAX_BATCH_WRITE_ITEMS,
        resource=None,
    ):
        if not 1 <= max_batch_size <= MAX_BATCH_WRITE_ITEMS:
            raise ValueError(f"max_batch_size must be between 1 and {MAX_BATCH_WRITE_ITEMS}")
        self.max_batch_size = max_batch_size
        self.resource = resource or _resource(region, endpoint_url)

    def batch_write(self, location: str, items: List[Record]) -> BatchWriteOutcome:
        """Write up to max_batch_size items. Client errors propagate to the sink."""
        if len(items) > self.max_batch_size:
            raise ValueError(f"batch of {len(items)} exceeds max_batch_size={self.max_batch_size}")

        response = self.resource.batch_write_item(
            RequestItems={location: [{"PutRequest": {"Item": item}} for item in items]}
        )
        unprocessed = response.get("UnprocessedItems", {}).get(location, [])
        return BatchWriteOutcome(
            unprocessed=[req.get("PutRequest", {}).get("Item", {}) for req in unprocessed],
        )
