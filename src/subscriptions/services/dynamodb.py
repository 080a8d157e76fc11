"""DynamoDB access for subscription records and the webhook event log.

Exposes only the operations the stores need: consistent reads, insert-once
writes, compare-and-set updates, all-or-nothing inserts across items and
range queries on a secondary index. Conditional failures are reported as
return values, never as exceptions.
"""

import os
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

_dynamodb_service_instance: "DynamoDBService | None" = None

_serializer = TypeSerializer()


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the shared DynamoDB service.

    Args:
        environment: Environment name. Only used on first call.
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Drop the shared instance so the next call builds fresh boto3 clients."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


def _is_condition_failure(error: ClientError) -> bool:
    return error.response["Error"]["Code"] in (
        "ConditionalCheckFailedException",
        "TransactionCanceledException",
    )


class DynamoDBService:
    """Table access with environment-prefixed table names.

    Table "subscriptions" in environment "prod" resolves to
    "subscriptions-prod-subscriptions" unless DYNAMODB_TABLE_PREFIX is set.
    """

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"subscriptions-{self.environment}"
        )
        self._resource = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")

    def table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _table(self, table: str) -> Any:
        return self._resource.Table(self.table_name(table))

    def read(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Strongly consistent read of one item, None when absent."""
        response = self._table(table).get_item(Key=key, ConsistentRead=True)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def insert(self, table: str, item: dict[str, Any], key_attribute: str) -> bool:
        """Write an item unless one with the same key exists.

        Returns:
            True if written, False if the key was already taken
        """
        try:
            self._table(table).put_item(
                Item=item,
                ConditionExpression=f"attribute_not_exists({key_attribute})",
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise
        return True

    def insert_all(self, table: str, items: list[dict[str, Any]], key_attribute: str) -> bool:
        """Write several items in one transaction, none if any key is taken.

        Returns:
            True if all were written, False if the transaction was cancelled
        """
        table_name = self.table_name(table)
        transact_items = [
            {
                "Put": {
                    "TableName": table_name,
                    "Item": {k: _serializer.serialize(v) for k, v in item.items()},
                    "ConditionExpression": f"attribute_not_exists({key_attribute})",
                }
            }
            for item in items
        ]
        try:
            self._client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise
        return True

    def compare_and_set(
        self,
        table: str,
        key: dict[str, Any],
        attribute: str,
        expected: Any,
        updates: dict[str, Any],
    ) -> bool:
        """Set attributes only while `attribute` still equals `expected`.

        Args:
            table: Table name without prefix
            key: Primary key of an existing item
            attribute: Attribute guarding the update
            expected: Value the guard attribute must hold
            updates: Attribute values to set

        Returns:
            True if updated, False if the item is missing or the guard moved
        """
        names = {"#guard": attribute}
        values: dict[str, Any] = {":expected": expected}
        assignments = []
        for position, (name, value) in enumerate(updates.items()):
            names[f"#a{position}"] = name
            values[f":v{position}"] = value
            assignments.append(f"#a{position} = :v{position}")

        key_name = next(iter(key))
        try:
            self._table(table).update_item(
                Key=key,
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression=f"attribute_exists({key_name}) AND #guard = :expected",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise
        return True

    def query_before(
        self,
        table: str,
        index_name: str,
        partition: tuple[str, str],
        sort: tuple[str, str],
    ) -> list[dict[str, Any]]:
        """All index items in one partition whose sort key is below a bound.

        Args:
            table: Table name without prefix
            index_name: Secondary index to query
            partition: (attribute, value) of the index partition key
            sort: (attribute, exclusive upper bound) of the index sort key

        Returns:
            Projected items in ascending sort order, across all pages
        """
        condition = Key(partition[0]).eq(partition[1]) & Key(sort[0]).lt(sort[1])
        kwargs: dict[str, Any] = {"IndexName": index_name, "KeyConditionExpression": condition}
        items: list[dict[str, Any]] = []
        while True:
            response = self._table(table).query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key
