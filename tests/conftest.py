from __future__ import annotations

import asyncio
import copy
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from starlette.requests import Request

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from deluxe.core.settings import S  # noqa: E402
from deluxe.core.tables import T  # noqa: E402
from deluxe.services import stories as stories_service  # noqa: E402


def _split_top_level(expr: str) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


class FakeDynamoClient:
    """``table.meta.client`` for the fakes: only ``transact_write_items``."""

    def __init__(self) -> None:
        self.tables: Dict[str, "FakeTable"] = {}
        self.transactions = 0

    def transact_write_items(self, *, TransactItems: List[Dict[str, Any]]) -> None:
        for i, step in enumerate(TransactItems):
            put = step.get("Put")
            if not put or put.get("ConditionExpression") != "attribute_not_exists(pk)":
                continue
            table = self.tables[put["TableName"]]
            if (put["Item"]["pk"], put["Item"]["sk"]) in table.items:
                raise ClientError(
                    {
                        "Error": {"Code": "TransactionCanceledException", "Message": "Transaction cancelled"},
                        "CancellationReasons": [
                            {"Code": "ConditionalCheckFailed" if j == i else "None"} for j in range(len(TransactItems))
                        ],
                    },
                    "TransactWriteItems",
                )
        self.transactions += 1
        for step in TransactItems:
            if "Put" in step:
                put = step["Put"]
                table = self.tables[put["TableName"]]
                table.put_calls += 1
                table.items[(put["Item"]["pk"], put["Item"]["sk"])] = copy.deepcopy(put["Item"])
            else:
                update = dict(step["Update"])
                table = self.tables[update.pop("TableName")]
                table.update_item(**update)


class FakeTable:
    """In-memory stand-in for the subset of the boto3 Table API the services use."""

    def __init__(self, name: str = "table", client: Optional[FakeDynamoClient] = None) -> None:
        self.name = name
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.put_calls = 0
        self.meta = SimpleNamespace(client=client or FakeDynamoClient())
        self.meta.client.tables[name] = self

    def get_item(self, *, Key: Dict[str, str]) -> Dict[str, Any]:
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": copy.deepcopy(item)} if item else {}

    def put_item(self, *, Item: Dict[str, Any], ConditionExpression: Optional[str] = None, **_: Any) -> None:
        key = (Item["pk"], Item["sk"])
        if ConditionExpression == "attribute_not_exists(pk)" and key in self.items:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                "PutItem",
            )
        self.put_calls += 1
        self.items[key] = copy.deepcopy(Item)

    def delete_item(self, *, Key: Dict[str, str]) -> None:
        self.items.pop((Key["pk"], Key["sk"]), None)

    def query(
        self,
        *,
        KeyConditionExpression: str,
        ExpressionAttributeValues: Dict[str, Any],
        ScanIndexForward: bool = True,
        Limit: Optional[int] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        pk = ExpressionAttributeValues[":pk"]
        prefix = ExpressionAttributeValues.get(":p") if "begins_with" in KeyConditionExpression else None
        rows = [
            copy.deepcopy(item)
            for (item_pk, item_sk), item in self.items.items()
            if item_pk == pk and (prefix is None or item_sk.startswith(prefix))
        ]
        rows.sort(key=lambda it: it["sk"], reverse=not ScanIndexForward)
        if Limit:
            rows = rows[:Limit]
        return {"Items": rows}

    def scan(
        self,
        *,
        FilterExpression: str,
        ExpressionAttributeNames: Dict[str, str],
        ExpressionAttributeValues: Dict[str, Any],
        **_: Any,
    ) -> Dict[str, Any]:
        assert FilterExpression == "#a <= :v"
        attr = ExpressionAttributeNames["#a"]
        bound = ExpressionAttributeValues[":v"]
        return {
            "Items": [
                copy.deepcopy(item) for item in self.items.values() if attr in item and item[attr] <= bound
            ]
        }

    def update_item(
        self,
        *,
        Key: Dict[str, str],
        UpdateExpression: str,
        ExpressionAttributeValues: Dict[str, Any],
        ExpressionAttributeNames: Optional[Dict[str, str]] = None,
        ConditionExpression: Optional[str] = None,
        **_: Any,
    ) -> None:
        names = ExpressionAttributeNames or {}
        values = ExpressionAttributeValues
        if ConditionExpression:
            # supports "#a IN (:x, :y)" and "#a = :x"
            left, sep, right = ConditionExpression.partition(" IN ")
            if not sep:
                left, sep, right = ConditionExpression.partition(" = ")
            allowed = [values[key.strip()] for key in right.strip("() ").split(",")]
            current = self.items.get((Key["pk"], Key["sk"]), {}).get(names.get(left.strip(), left.strip()))
            if current is None or current not in allowed:
                raise ClientError(
                    {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                    "UpdateItem",
                )
        item = self.items.setdefault((Key["pk"], Key["sk"]), {"pk": Key["pk"], "sk": Key["sk"]})
        expr = UpdateExpression.strip()
        assert expr.startswith("SET ")
        for assignment in _split_top_level(expr[4:]):
            left, right = (s.strip() for s in assignment.split("=", 1))
            attr = names.get(left, left)
            if right.startswith("list_append("):
                inner = right[len("list_append("):-1]
                base_expr, tail_key = (s.strip() for s in inner.rsplit(",", 1))
                fallback_key = base_expr[base_expr.rindex(",") + 1:-1].strip()
                base = item.get(attr, values[fallback_key])
                item[attr] = list(base) + list(values[tail_key])
            elif right.startswith("if_not_exists("):
                base_expr, delta_key = (s.strip() for s in right.rsplit("+", 1))
                fallback_key = base_expr[base_expr.rindex(",") + 1:-1].strip()
                item[attr] = int(item.get(attr, values[fallback_key])) + int(values[delta_key])
            else:
                item[attr] = copy.deepcopy(values[right])

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [item for item in self.items.values() if predicate(item)]


class FakeTables:
    def __init__(self) -> None:
        self.client = FakeDynamoClient()
        self.users = FakeTable("users", self.client)
        self.finance = FakeTable("finance", self.client)
        self.notifications = FakeTable("notifications", self.client)
        self.stories = FakeTable("stories", self.client)
        self.posts = FakeTable("posts", self.client)


@pytest.fixture
def tables() -> Iterator[FakeTables]:
    fakes = FakeTables()
    saved = {name: getattr(T, name) for name in ("users", "finance", "notifications", "stories", "posts")}
    for name in saved:
        object.__setattr__(T, name, getattr(fakes, name))
    stories_service.clear_stories_cache()
    yield fakes
    for name, table in saved.items():
        object.__setattr__(T, name, table)
    stories_service.clear_stories_cache()


@pytest.fixture
def settings() -> Iterator[Callable[..., None]]:
    saved: Dict[str, Any] = {}

    def override(**values: Any) -> None:
        for key, value in values.items():
            saved.setdefault(key, getattr(S, key))
            object.__setattr__(S, key, value)

    yield override
    for key, value in saved.items():
        object.__setattr__(S, key, value)


@pytest.fixture
def stripe_mock(monkeypatch, settings) -> MagicMock:
    settings(stripe_secret_key="sk_test", stripe_webhook_secret="whsec_test")
    mock = MagicMock()
    for module in (
        "deluxe.services.checkout",
        "deluxe.services.reconciliation",
        "deluxe.routers.webhooks",
    ):
        monkeypatch.setattr(f"{module}.stripe", mock)
    return mock


@pytest.fixture
def build_request() -> Callable[..., Request]:
    def build(
        *,
        method: str = "POST",
        path: str = "/",
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ) -> Request:
        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
            "scheme": "http",
            "server": ("testserver", 80),
            "query_string": b"",
        }

        async def receive() -> Dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)

    return build


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def run() -> Callable[[Any], Any]:
    return run_async
