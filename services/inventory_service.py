"""Example service: a small in-memory shop inventory with orders."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

__all__ = ["inventory_service"]

INVENTORY = [
    {"id": "1", "name": "Sonic Screwdriver", "description": "The Doctor's trusty tool", "price": 100, "qty": 10},
    {"id": "2", "name": "Towel", "description": "Don't panic!", "price": 42, "qty": 5},
    {"id": "3", "name": "Lightsaber", "description": "An elegant weapon for a more civilized age", "price": 200, "qty": 3},
    {"id": "4", "name": "Ring of Power", "description": "One ring to rule them all", "price": 1000, "qty": 1},
    {"id": "5", "name": "Hoverboard", "description": "Great Scott!", "price": 500, "qty": 2},
]

ORDERS: list[dict] = []


class SearchInput(BaseModel):
    search: str = Field(..., description="Could match name or description")


class ItemInput(BaseModel):
    id: str


class OrderLine(BaseModel):
    id: str = Field(..., description="Item ID")
    qty: int = Field(..., gt=0, description="Quantity to order")


class OrderInput(BaseModel):
    items: list[OrderLine]


class NoInput(BaseModel):
    pass


def _find(item_id: str) -> dict | None:
    return next((item for item in INVENTORY if item["id"] == item_id), None)


def search_inventory(payload: dict) -> list[dict]:
    search = payload["search"].lower()
    return [
        item for item in INVENTORY
        if search in item["name"].lower() or search in item["description"].lower()
    ]


def get_inventory_item(payload: dict) -> dict | None:
    return _find(payload["id"])


def make_order(payload: dict) -> dict:
    """Check every line first, then take the stock: an order is all or nothing."""
    order = []
    for line in payload["items"]:
        item = _find(line["id"])
        if item is None:
            raise ValueError(f"Item with id {line['id']} not found")
        if item["qty"] < line["qty"]:
            raise ValueError(f"Not enough stock for item {item['name']}. Only {item['qty']} left")
        order.append({"itemId": line["id"], "qty": line["qty"], "at": datetime.now(timezone.utc).isoformat()})

    for line in payload["items"]:
        _find(line["id"])["qty"] -= line["qty"]

    ORDERS.extend(order)
    return {"order": order}


def list_orders(payload: dict) -> list[dict]:
    return ORDERS


def total_order_value(payload: dict) -> int:
    total = 0
    for order in ORDERS:
        item = _find(order["itemId"])
        if item is None:
            raise ValueError(f"Item with id {order['itemId']} not found")
        total += item["price"] * order["qty"]
    return total


inventory_service = {
    "name": "example",
    "functions": [
        {"name": "searchInventory", "func": search_inventory, "description": "Searches the inventory",
         "schema": {"input": SearchInput}},
        {"name": "getInventoryItem", "func": get_inventory_item, "description": "Gets an inventory item",
         "schema": {"input": ItemInput}},
        {"name": "makeOrder", "func": make_order, "description": "Makes an order",
         "config": {"requiresApproval": True}, "schema": {"input": OrderInput}},
        {"name": "listOrders", "func": list_orders, "description": "Lists all orders",
         "schema": {"input": NoInput}},
        {"name": "totalOrderValue", "func": total_order_value, "description": "Calculates the total value of all orders",
         "schema": {"input": NoInput}},
    ],
}
