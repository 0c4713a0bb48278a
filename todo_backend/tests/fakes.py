import json
import threading

import httpx

from taskboard.errors import GatewayError
from taskboard.gateways import InMemoryGateway


class FakeRecordAPI:
    """In-process REST record API served through httpx.MockTransport."""

    def __init__(self):
        self.collections = {"categories": {}, "tasks": {}, "subtasks": {}}
        self.requests = []
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            if isinstance(self.fail_with, Exception):
                raise self.fail_with
            return httpx.Response(self.fail_with, json={"message": "boom"})

        # Paths look like /v1/<collection>[/<id>]
        parts = request.url.path.strip("/").split("/")[1:]
        collection = self.collections[parts[0]]
        record_id = parts[1] if len(parts) > 1 else None

        if request.method == "GET":
            items = list(collection.values())
            order = request.url.params.get("order")
            if order:
                field, direction = order.split(".")
                items.sort(key=lambda r: r[field], reverse=direction == "desc")
            return httpx.Response(200, json=items)
        if request.method == "POST":
            record = json.loads(request.content)
            collection[record["id"]] = record
            # Record APIs typically answer with an array of the inserted rows
            return httpx.Response(201, json=[record])
        if request.method == "PATCH":
            if record_id not in collection:
                return httpx.Response(404, json={"message": "not found"})
            collection[record_id].update(json.loads(request.content))
            return httpx.Response(200, json=collection[record_id])
        if request.method == "DELETE":
            if collection.pop(record_id, None) is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(204)
        return httpx.Response(405)


class FlakyGateway(InMemoryGateway):
    """In-memory gateway that fails chosen (operation, collection) calls."""

    def __init__(self):
        super().__init__()
        self.failing = set()

    def _check(self, operation, collection):
        if (operation, collection) in self.failing:
            raise GatewayError(operation, collection, RuntimeError("unavailable"))

    def list(self, collection, order_by=None, descending=False):
        self._check("list", collection)
        return super().list(collection, order_by, descending)

    def insert(self, collection, record):
        self._check("insert", collection)
        return super().insert(collection, record)

    def update(self, collection, record_id, fields):
        self._check("update", collection)
        return super().update(collection, record_id, fields)

    def delete(self, collection, record_id):
        self._check("delete", collection)
        return super().delete(collection, record_id)


class SlowInsertGateway(InMemoryGateway):
    """In-memory gateway whose inserts block until the test releases them."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def insert(self, collection, record):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().insert(collection, record)
