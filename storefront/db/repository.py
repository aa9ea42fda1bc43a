"""All SQL for the storefront, bound to one asyncpg connection."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models import (
    CartLine,
    CatalogEntry,
    Coupon,
    DiscountType,
    LineKey,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

# columns an admin may change through update_coupon()
COUPON_COLUMNS = (
    "code", "description", "discount_type", "discount_value",
    "min_order_amount", "max_discount_amount", "usage_limit",
    "per_user_limit", "valid_from", "valid_until", "is_active",
)

_STATUS_TIMESTAMPS = {
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def _coupon_from_row(row, product_ids: List[str], category_ids: List[str]) -> Coupon:
    return Coupon(
        id=row["id"],
        code=row["code"],
        description=row["description"],
        discount_type=DiscountType(row["discount_type"]),
        discount_value=row["discount_value"],
        min_order_amount=row["min_order_amount"],
        max_discount_amount=row["max_discount_amount"],
        usage_limit=row["usage_limit"],
        per_user_limit=row["per_user_limit"],
        used_count=row["used_count"],
        valid_from=row["valid_from"],
        valid_until=row["valid_until"],
        is_active=row["is_active"],
        product_ids=product_ids,
        category_ids=category_ids,
        created_at=row["created_at"],
    )


def _order_from_row(row, item_rows) -> Order:
    address = row["shipping_address"]
    return Order(
        id=row["id"],
        order_number=row["order_number"],
        user_id=row["user_id"],
        items=[
            OrderItem(
                product_id=i["product_id"],
                variant_id=i["variant_id"],
                product_name=i["product_name"],
                variant_name=i["variant_name"],
                sku=i["sku"],
                unit_price=i["price"],
                quantity=i["quantity"],
                subtotal=i["subtotal"],
            )
            for i in item_rows
        ],
        shipping_address=json.loads(address) if isinstance(address, str) else address,
        payment_method=PaymentMethod(row["payment_method"]),
        payment_status=PaymentStatus(row["payment_status"]),
        payment_intent_id=row["payment_intent_id"],
        subtotal=row["subtotal"],
        discount=row["discount_amount"],
        shipping=row["shipping_fee"],
        tax=row["tax_amount"],
        total=row["total_amount"],
        currency=row["currency"],
        coupon_code=row["coupon_code"],
        status=OrderStatus(row["status"]),
        notes=row["notes"],
        tracking_number=row["tracking_number"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        shipped_at=row["shipped_at"],
        delivered_at=row["delivered_at"],
        cancelled_at=row["cancelled_at"],
    )


class PostgresRepository:
    """
    Data access for catalog, cart, coupons and orders.

    Every method runs on the connection it was built with, so a caller that
    opened a transaction (see `db.unit_of_work`) gets all-or-nothing writes.
    """

    def __init__(self, conn):
        self.conn = conn

    # --- Catalog --------------------------------------------------------------
    async def fetch_catalog(self, keys: Iterable[LineKey], lock: bool = False) -> Dict[LineKey, CatalogEntry]:
        """
        Load price and stock for each (product, variant) key.

        With lock=True the rows are locked FOR UPDATE, always in id order so
        two checkouts touching the same products cannot deadlock.
        """
        keys = set(keys)
        product_ids = sorted({pid for pid, _ in keys})
        variant_ids = sorted({vid for _, vid in keys if vid is not None})
        suffix = " FOR UPDATE" if lock else ""

        products = {
            r["id"]: r
            for r in await self.conn.fetch(
                "SELECT id, name, sku, category_id, price, stock_quantity, is_active "
                "FROM products WHERE id = ANY($1::text[]) ORDER BY id" + suffix,
                product_ids,
            )
        }
        variants = {}
        if variant_ids:
            variants = {
                r["id"]: r
                for r in await self.conn.fetch(
                    "SELECT id, product_id, name, sku, price, stock_quantity, is_active "
                    "FROM product_variants WHERE id = ANY($1::text[]) ORDER BY id" + suffix,
                    variant_ids,
                )
            }

        out: Dict[LineKey, CatalogEntry] = {}
        for pid, vid in keys:
            p = products.get(pid)
            if p is None:
                continue
            if vid is None:
                out[(pid, vid)] = CatalogEntry(
                    product_id=pid,
                    variant_id=None,
                    name=p["name"],
                    sku=p["sku"],
                    category_id=p["category_id"],
                    price=p["price"],
                    stock_quantity=p["stock_quantity"],
                    is_active=p["is_active"],
                )
                continue
            v = variants.get(vid)
            if v is None or v["product_id"] != pid:
                continue
            out[(pid, vid)] = CatalogEntry(
                product_id=pid,
                variant_id=vid,
                name=p["name"],
                variant_name=v["name"],
                sku=v["sku"] or p["sku"],
                category_id=p["category_id"],
                price=v["price"] if v["price"] is not None else p["price"],
                stock_quantity=v["stock_quantity"],
                is_active=p["is_active"] and v["is_active"],
            )
        return out

    async def decrement_stock(self, product_id: str, variant_id: Optional[str], quantity: int) -> bool:
        """Atomically take `quantity` units; False when not enough stock is left."""
        if variant_id is None:
            result = await self.conn.execute(
                "UPDATE products SET stock_quantity = stock_quantity - $2, updated_at = NOW() "
                "WHERE id = $1 AND stock_quantity >= $2",
                product_id, quantity,
            )
        else:
            result = await self.conn.execute(
                "UPDATE product_variants SET stock_quantity = stock_quantity - $3, updated_at = NOW() "
                "WHERE id = $2 AND product_id = $1 AND stock_quantity >= $3",
                product_id, variant_id, quantity,
            )
        # result looks like "UPDATE 1"
        return int(result.split()[-1]) == 1

    async def restore_stock(self, product_id: str, variant_id: Optional[str], quantity: int) -> None:
        if variant_id is None:
            await self.conn.execute(
                "UPDATE products SET stock_quantity = stock_quantity + $2, updated_at = NOW() WHERE id = $1",
                product_id, quantity,
            )
        else:
            await self.conn.execute(
                "UPDATE product_variants SET stock_quantity = stock_quantity + $3, updated_at = NOW() "
                "WHERE id = $2 AND product_id = $1",
                product_id, variant_id, quantity,
            )

    # --- Cart -----------------------------------------------------------------
    async def get_cart_lines(self, user_id: str, lock: bool = False) -> List[CartLine]:
        if lock:
            # held until commit; serializes writers even while the cart is still empty
            await self.conn.execute("SELECT pg_advisory_xact_lock(hashtext('cart:' || $1))", user_id)
        rows = await self.conn.fetch(
            "SELECT product_id, variant_id, quantity FROM cart_items "
            "WHERE user_id = $1 ORDER BY created_at, id",
            user_id,
        )
        return [CartLine(r["product_id"], r["variant_id"], r["quantity"]) for r in rows]

    async def replace_cart(self, user_id: str, lines: List[CartLine]) -> None:
        await self.conn.execute("DELETE FROM cart_items WHERE user_id = $1", user_id)
        if lines:
            await self.conn.executemany(
                "INSERT INTO cart_items (user_id, product_id, variant_id, quantity) VALUES ($1, $2, $3, $4)",
                [(user_id, l.product_id, l.variant_id, l.quantity) for l in lines],
            )

    async def clear_cart(self, user_id: str) -> None:
        await self.conn.execute("DELETE FROM cart_items WHERE user_id = $1", user_id)

    # --- Coupons --------------------------------------------------------------
    async def _coupon_restrictions(self, coupon_id: int) -> Tuple[List[str], List[str]]:
        products = await self.conn.fetch(
            "SELECT product_id FROM coupon_products WHERE coupon_id = $1 ORDER BY product_id", coupon_id
        )
        categories = await self.conn.fetch(
            "SELECT category_id FROM coupon_categories WHERE coupon_id = $1 ORDER BY category_id", coupon_id
        )
        return [r["product_id"] for r in products], [r["category_id"] for r in categories]

    async def _coupon(self, row) -> Optional[Coupon]:
        if not row:
            return None
        product_ids, category_ids = await self._coupon_restrictions(row["id"])
        return _coupon_from_row(row, product_ids, category_ids)

    async def get_coupon_by_code(self, code: str, lock: bool = False) -> Optional[Coupon]:
        sql = "SELECT * FROM coupons WHERE code = $1"
        if lock:
            sql += " FOR UPDATE"
        return await self._coupon(await self.conn.fetchrow(sql, code))

    async def get_coupon(self, coupon_id: int) -> Optional[Coupon]:
        return await self._coupon(await self.conn.fetchrow("SELECT * FROM coupons WHERE id = $1", coupon_id))

    async def list_coupons(self) -> List[Coupon]:
        rows = await self.conn.fetch("SELECT * FROM coupons ORDER BY created_at DESC, id DESC")
        return [await self._coupon(r) for r in rows]

    async def list_available_coupons(self, now: datetime) -> List[Coupon]:
        rows = await self.conn.fetch(
            """
            SELECT * FROM coupons
            WHERE is_active
              AND (valid_from IS NULL OR valid_from <= $1)
              AND (valid_until IS NULL OR valid_until >= $1)
              AND (usage_limit IS NULL OR used_count < usage_limit)
            ORDER BY created_at DESC, id DESC
            """,
            now,
        )
        return [await self._coupon(r) for r in rows]

    async def _set_coupon_restrictions(self, coupon_id: int, product_ids: Optional[List[str]],
                                       category_ids: Optional[List[str]]) -> None:
        if product_ids is not None:
            await self.conn.execute("DELETE FROM coupon_products WHERE coupon_id = $1", coupon_id)
            if product_ids:
                await self.conn.executemany(
                    "INSERT INTO coupon_products (coupon_id, product_id) VALUES ($1, $2)",
                    [(coupon_id, pid) for pid in product_ids],
                )
        if category_ids is not None:
            await self.conn.execute("DELETE FROM coupon_categories WHERE coupon_id = $1", coupon_id)
            if category_ids:
                await self.conn.executemany(
                    "INSERT INTO coupon_categories (coupon_id, category_id) VALUES ($1, $2)",
                    [(coupon_id, cid) for cid in category_ids],
                )

    async def insert_coupon(self, coupon: Coupon) -> Coupon:
        coupon_id = await self.conn.fetchval(
            """
            INSERT INTO coupons
                (code, description, discount_type, discount_value, min_order_amount,
                 max_discount_amount, usage_limit, per_user_limit, valid_from, valid_until, is_active)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            RETURNING id
            """,
            coupon.code, coupon.description, coupon.discount_type.value, coupon.discount_value,
            coupon.min_order_amount, coupon.max_discount_amount, coupon.usage_limit,
            coupon.per_user_limit, coupon.valid_from, coupon.valid_until, coupon.is_active,
        )
        await self._set_coupon_restrictions(coupon_id, coupon.product_ids, coupon.category_ids)
        return await self.get_coupon(coupon_id)

    async def update_coupon(self, coupon_id: int, fields: Dict[str, Any],
                            product_ids: Optional[List[str]] = None,
                            category_ids: Optional[List[str]] = None) -> Optional[Coupon]:
        assignments, params = [], [coupon_id]
        for column in COUPON_COLUMNS:
            if column in fields:
                value = fields[column]
                params.append(value.value if isinstance(value, DiscountType) else value)
                assignments.append(f"{column} = ${len(params)}")
        if assignments:
            await self.conn.execute(
                f"UPDATE coupons SET {', '.join(assignments)} WHERE id = $1", *params
            )
        await self._set_coupon_restrictions(coupon_id, product_ids, category_ids)
        return await self.get_coupon(coupon_id)

    async def delete_coupon(self, coupon_id: int) -> bool:
        result = await self.conn.execute("DELETE FROM coupons WHERE id = $1", coupon_id)
        return int(result.split()[-1]) > 0

    async def count_coupon_usage(self, coupon_id: int, user_id: str) -> int:
        return await self.conn.fetchval(
            "SELECT COUNT(*) FROM coupon_usage WHERE coupon_id = $1 AND user_id = $2",
            coupon_id, user_id,
        )

    async def increment_coupon_usage(self, coupon_id: int) -> bool:
        """Count one use unless the limit is already exhausted."""
        row = await self.conn.fetchrow(
            """
            UPDATE coupons SET used_count = used_count + 1
            WHERE id = $1 AND (usage_limit IS NULL OR used_count < usage_limit)
            RETURNING used_count
            """,
            coupon_id,
        )
        return row is not None

    async def record_coupon_usage(self, coupon_id: int, user_id: Optional[str],
                                  order_id: str, discount_amount) -> None:
        await self.conn.execute(
            "INSERT INTO coupon_usage (coupon_id, user_id, order_id, discount_amount) VALUES ($1, $2, $3, $4)",
            coupon_id, user_id, order_id, discount_amount,
        )

    async def release_coupon_usage(self, coupon_code: str, order_id: str) -> None:
        await self.conn.execute(
            "UPDATE coupons SET used_count = GREATEST(used_count - 1, 0) WHERE code = $1", coupon_code
        )
        await self.conn.execute("DELETE FROM coupon_usage WHERE order_id = $1", order_id)

    # --- Orders ---------------------------------------------------------------
    async def next_order_sequence(self) -> int:
        return await self.conn.fetchval("SELECT nextval('order_number_seq')")

    async def insert_order(self, order: Order) -> None:
        await self.conn.execute(
            """
            INSERT INTO orders (id, order_number, user_id, shipping_address, payment_method,
                                payment_status, subtotal, discount_amount, shipping_fee, tax_amount,
                                total_amount, currency, coupon_code, status, notes,
                                created_at, updated_at)
            VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $16)
            """,
            order.id, order.order_number, order.user_id, json.dumps(order.shipping_address),
            order.payment_method.value, order.payment_status.value,
            order.subtotal, order.discount, order.shipping, order.tax, order.total,
            order.currency, order.coupon_code, order.status.value, order.notes, order.created_at,
        )
        await self.conn.executemany(
            """
            INSERT INTO order_items (order_id, product_id, variant_id, product_name, variant_name,
                                     sku, quantity, price, subtotal)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            """,
            [
                (order.id, i.product_id, i.variant_id, i.product_name, i.variant_name,
                 i.sku, i.quantity, i.unit_price, i.subtotal)
                for i in order.items
            ],
        )

    async def get_order(self, order_id: str, lock: bool = False) -> Optional[Order]:
        sql = "SELECT * FROM orders WHERE id = $1"
        if lock:
            sql += " FOR UPDATE"
        row = await self.conn.fetchrow(sql, order_id)
        if not row:
            return None
        items = await self.conn.fetch("SELECT * FROM order_items WHERE order_id = $1 ORDER BY id", order_id)
        return _order_from_row(row, items)

    async def list_orders(self, user_id: Optional[str] = None, status: Optional[OrderStatus] = None,
                          limit: int = 20, offset: int = 0) -> Tuple[List[Order], int]:
        where, params = ["1=1"], []
        if user_id is not None:
            params.append(user_id)
            where.append(f"user_id = ${len(params)}")
        if status is not None:
            params.append(status.value)
            where.append(f"status = ${len(params)}")
        where_sql = " AND ".join(where)

        total = await self.conn.fetchval(f"SELECT COUNT(*) FROM orders WHERE {where_sql}", *params)
        rows = await self.conn.fetch(
            f"SELECT * FROM orders WHERE {where_sql} "
            f"ORDER BY created_at DESC LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}",
            *params, limit, offset,
        )
        orders = []
        for r in rows:
            items = await self.conn.fetch("SELECT * FROM order_items WHERE order_id = $1 ORDER BY id", r["id"])
            orders.append(_order_from_row(r, items))
        return orders, total

    async def update_order_status(self, order_id: str, status: OrderStatus,
                                  tracking_number: Optional[str] = None) -> bool:
        assignments, params = ["status = $2", "updated_at = NOW()"], [order_id, status.value]
        stamp = _STATUS_TIMESTAMPS.get(status)
        if stamp:
            assignments.append(f"{stamp} = NOW()")
        if tracking_number:
            params.append(tracking_number)
            assignments.append(f"tracking_number = ${len(params)}")
        result = await self.conn.execute(
            f"UPDATE orders SET {', '.join(assignments)} WHERE id = $1", *params
        )
        return int(result.split()[-1]) > 0

    async def set_payment(self, order_id: str, payment_status: PaymentStatus,
                          payment_intent_id: Optional[str] = None) -> bool:
        result = await self.conn.execute(
            """
            UPDATE orders
            SET payment_status = $2,
                payment_intent_id = COALESCE($3, payment_intent_id),
                updated_at = NOW()
            WHERE id = $1
            """,
            order_id, payment_status.value, payment_intent_id,
        )
        return int(result.split()[-1]) > 0
