"""订单 CSV 导出"""
import csv
import io
from typing import Any, Dict, Iterable

CSV_HEADERS = [
    "Order Number", "Customer Name", "Phone", "Email", "Address",
    "Status", "Pickup Date", "Order Description", "Special Instructions",
    "Copies", "Paper Size", "Paper Type", "Color Mode", "Double Sided",
    "Binding Type", "Finishing Options", "Rush Order", "Estimated Price",
    "Final Price", "Print Ready", "Created At", "Updated At", "Notes",
]


def _yes_no(value: Any) -> str:
    return "Yes" if value else "No"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def order_to_row(order: Dict[str, Any]) -> list:
    """把订单字典转换为一行导出数据（列顺序同 CSV_HEADERS）"""
    return [
        order.get("order_number"),
        f"{_text(order.get('customer_first_name'))} {_text(order.get('customer_last_name'))}",
        order.get("customer_phone"),
        order.get("customer_email"),
        order.get("customer_address"),
        order.get("status"),
        order.get("pickup_date"),
        order.get("order_description"),
        order.get("special_instructions"),
        order.get("copies"),
        order.get("paper_size"),
        order.get("paper_type"),
        order.get("color_mode"),
        _yes_no(order.get("double_sided")),
        order.get("binding_type"),
        order.get("finishing_options"),
        _yes_no(order.get("rush_order")),
        order.get("estimated_price"),
        order.get("final_price"),
        _yes_no(order.get("print_ready")),
        order.get("created_at"),
        order.get("updated_at"),
        order.get("notes"),
    ]


def orders_to_csv(orders: Iterable[Dict[str, Any]]) -> str:
    """渲染 CSV 文档：表头 + 每个订单一行，所有字段加引号。"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for order in orders:
        writer.writerow([_text(value) for value in order_to_row(order)])
    return buffer.getvalue()
