from __future__ import annotations

from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from deluxe.core.settings import S
from deluxe.core.time import now_ts


def with_ttl(item: Dict[str, Any], ttl_epoch: int) -> Dict[str, Any]:
    item[S.ddb_ttl_attr] = int(ttl_epoch)
    return item


def is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def ddb_get(table: Any, pk: str, sk: str) -> Optional[Dict[str, Any]]:
    resp = table.get_item(Key={"pk": pk, "sk": sk})
    return resp.get("Item")


def ddb_put(table: Any, item: Dict[str, Any], *, condition_expression: Optional[str] = None) -> None:
    kwargs: Dict[str, Any] = {"Item": item}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    table.put_item(**kwargs)


def ddb_put_new(table: Any, item: Dict[str, Any]) -> bool:
    """Put ``item`` only if its key is unused. Returns False when it already exists."""
    try:
        ddb_put(table, item, condition_expression="attribute_not_exists(pk)")
        return True
    except ClientError as exc:
        if is_conditional_failure(exc):
            return False
        raise


def ddb_del(table: Any, pk: str, sk: str) -> None:
    table.delete_item(Key={"pk": pk, "sk": sk})


def ddb_query_pk(
    table: Any,
    pk: str,
    *,
    prefix: Optional[str] = None,
    newest_first: bool = False,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    expr = "pk = :pk"
    values: Dict[str, Any] = {":pk": pk}
    if prefix:
        expr += " AND begins_with(sk, :p)"
        values[":p"] = prefix
    kwargs: Dict[str, Any] = {
        "KeyConditionExpression": expr,
        "ExpressionAttributeValues": values,
        "ScanIndexForward": not newest_first,
    }
    if limit:
        kwargs["Limit"] = int(limit)

    items: List[Dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last or (limit and len(items) >= limit):
            break
        kwargs["ExclusiveStartKey"] = last
    return items[:limit] if limit else items


def ddb_scan_lte(table: Any, attr: str, value: Any) -> List[Dict[str, Any]]:
    """Scan the whole table for items whose ``attr`` is <= ``value``."""
    kwargs: Dict[str, Any] = {
        "FilterExpression": "#a <= :v",
        "ExpressionAttributeNames": {"#a": attr},
        "ExpressionAttributeValues": {":v": value},
    }
    items: List[Dict[str, Any]] = []
    while True:
        resp = table.scan(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last:
            return items
        kwargs["ExclusiveStartKey"] = last


def ddb_update(
    table: Any,
    pk: str,
    sk: str,
    expr: str,
    values: Dict[str, Any],
    names: Optional[Dict[str, str]] = None,
    *,
    condition_expression: Optional[str] = None,
) -> None:
    kwargs: Dict[str, Any] = {
        "Key": {"pk": pk, "sk": sk},
        "UpdateExpression": expr,
        "ExpressionAttributeValues": values,
    }
    if names:
        kwargs["ExpressionAttributeNames"] = names
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    table.update_item(**kwargs)


def ddb_set_fields(table: Any, pk: str, sk: str, fields: Dict[str, Any]) -> None:
    sets = []
    values: Dict[str, Any] = {}
    names: Dict[str, str] = {}
    for i, (key, value) in enumerate(fields.items(), start=1):
        names[f"#f{i}"] = key
        values[f":f{i}"] = value
        sets.append(f"#f{i} = :f{i}")
    ddb_update(table, pk, sk, "SET " + ", ".join(sets), values, names=names)


def increment_update(table: Any, pk: str, sk: str, delta: Dict[str, int]) -> Dict[str, Any]:
    """``Update`` step adding each non-zero ``delta`` value to its numeric attribute."""
    sets = []
    values: Dict[str, Any] = {":z": 0, ":t": now_ts()}
    names: Dict[str, str] = {}

    i = 0
    for key, value in delta.items():
        if value == 0:
            continue
        i += 1
        nk = f"#k{i}"
        dv = f":d{i}"
        names[nk] = key
        values[dv] = int(value)
        sets.append(f"{nk} = if_not_exists({nk}, :z) + {dv}")

    names["#u"] = "updated_at"
    sets.append("#u = :t")

    return {
        "TableName": table.name,
        "Key": {"pk": pk, "sk": sk},
        "UpdateExpression": "SET " + ", ".join(sets),
        "ExpressionAttributeValues": values,
        "ExpressionAttributeNames": names,
    }


def ddb_increment(table: Any, pk: str, sk: str, delta: Dict[str, int]) -> None:
    """Add each non-zero ``delta`` value to its numeric attribute in one update."""
    update = increment_update(table, pk, sk, delta)
    ddb_update(
        table,
        pk,
        sk,
        update["UpdateExpression"],
        update["ExpressionAttributeValues"],
        names=update["ExpressionAttributeNames"],
    )


def ddb_put_new_with(table: Any, item: Dict[str, Any], updates: List[Dict[str, Any]]) -> bool:
    """Put ``item`` if its key is unused and apply ``updates`` in the same transaction.

    Returns False, with nothing written, when the item already exists. The
    resource client serializes plain Python values like ``Table`` calls do.
    """
    if not updates:
        return ddb_put_new(table, item)
    transact_items = [
        {
            "Put": {
                "TableName": table.name,
                "Item": item,
                "ConditionExpression": "attribute_not_exists(pk)",
            }
        }
    ]
    transact_items.extend({"Update": update} for update in updates)
    try:
        table.meta.client.transact_write_items(TransactItems=transact_items)
        return True
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") != "TransactionCanceledException":
            raise
        reasons = exc.response.get("CancellationReasons") or []
        if reasons and reasons[0].get("Code") == "ConditionalCheckFailed":
            return False
        raise
