from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ..errors import ConflictError, NotFoundError, ValidationError
from ..transactions import immediate_tx
from ...constants import PAYMENT_CREDIT
from ...utils.sql import UNSET, build_update
from ...utils.validators import is_text, try_parse_float


@dataclass
class Customer:
    customer_id: int | None
    first_name: str
    last_name: str
    phone: str
    notes: str | None
    opening_debt: float

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class DebtBreakdown:
    customer_id: int
    opening_debt: float
    credit_sales: float
    payments: float

    @property
    def remaining(self) -> float:
        """Unclamped: negative means the customer has paid in advance."""
        return self.opening_debt + self.credit_sales - self.payments

    @property
    def outstanding(self) -> float:
        return max(0.0, self.remaining)


_SELECT = (
    "SELECT customer_id, first_name, last_name, phone, notes, "
    "CAST(COALESCE(opening_debt, 0) AS REAL) AS opening_debt "
    "FROM customers"
)

_UPDATABLE = ("first_name", "last_name", "phone", "notes", "opening_debt")


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        if not is_text(s):
            raise ValidationError("Text fields must be strings.")
        # trim only
        return s.strip()

    @staticmethod
    def _ensure_non_empty(value: str | None, field_label: str) -> None:
        if not is_text(value) or value.strip() == "":
            raise ValidationError(f"{field_label} cannot be empty.")

    @staticmethod
    def _parse_opening_debt(value) -> float:
        ok, amount = try_parse_float(value if value is not None else 0)
        if not ok or amount < 0:
            raise ValidationError("Opening debt must be a non-negative number.")
        return float(amount)

    def _phone_taken(self, phone: str, exclude_id: int | None = None) -> bool:
        row = self.conn.execute(
            "SELECT customer_id FROM customers WHERE phone = ?", (phone,)
        ).fetchone()
        return row is not None and row["customer_id"] != exclude_id

    # ---- Queries ----------------------------------------------------------

    def list_customers(self) -> list[Customer]:
        rows = self.conn.execute(_SELECT + " ORDER BY customer_id DESC").fetchall()
        return [Customer(**r) for r in rows]

    def search(self, term: str) -> list[Customer]:
        """
        Server-side search over first name, last name and phone.
        """
        if not is_text(term):
            raise ValidationError("Search term must be text.")
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            _SELECT
            + " WHERE first_name LIKE ? OR last_name LIKE ? OR phone LIKE ?"
            + " ORDER BY customer_id DESC",
            (pattern, pattern, pattern),
        ).fetchall()
        return [Customer(**r) for r in rows]

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(_SELECT + " WHERE customer_id=?", (customer_id,)).fetchone()
        return Customer(**r) if r else None

    def require(self, customer_id: int) -> Customer:
        customer = self.get(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        return customer

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        first_name: str,
        last_name: str,
        phone: str,
        notes: str | None = None,
        opening_debt: float = 0.0,
    ) -> Customer:
        # validation
        self._ensure_non_empty(first_name, "First name")
        self._ensure_non_empty(last_name, "Last name")
        self._ensure_non_empty(phone, "Phone")
        debt = self._parse_opening_debt(opening_debt)

        phone_n = self._normalize_text(phone)
        with immediate_tx(self.conn):
            if self._phone_taken(phone_n):
                raise ConflictError(f"A customer with phone number {phone_n} already exists.")
            cur = self.conn.execute(
                "INSERT INTO customers(first_name, last_name, phone, notes, opening_debt) "
                "VALUES (?,?,?,?,?)",
                (
                    self._normalize_text(first_name),
                    self._normalize_text(last_name),
                    phone_n,
                    self._normalize_text(notes),
                    debt,
                ),
            )
            customer_id = int(cur.lastrowid)
        return self.require(customer_id)

    def update(
        self,
        customer_id: int,
        *,
        first_name=UNSET,
        last_name=UNSET,
        phone=UNSET,
        notes=UNSET,
        opening_debt=UNSET,
    ) -> Customer:
        """
        Partial update; fields left as UNSET keep their stored value.
        """
        changes = {}
        for label, key, value in (
            ("First name", "first_name", first_name),
            ("Last name", "last_name", last_name),
            ("Phone", "phone", phone),
        ):
            if value is not UNSET:
                self._ensure_non_empty(value, label)
                changes[key] = self._normalize_text(value)
        if notes is not UNSET:
            changes["notes"] = self._normalize_text(notes)
        if opening_debt is not UNSET:
            changes["opening_debt"] = self._parse_opening_debt(opening_debt)

        with immediate_tx(self.conn):
            self.require(customer_id)
            if "phone" in changes and self._phone_taken(changes["phone"], exclude_id=customer_id):
                raise ConflictError(f"A customer with phone number {changes['phone']} already exists.")
            built = build_update(
                "customers",
                changes,
                allowed=_UPDATABLE,
                key_column="customer_id",
                key_value=customer_id,
                touch_column="updated_at",
            )
            if built is not None:
                sql, params = built
                self.conn.execute(sql, params)
        return self.require(customer_id)

    # ---- Debt -------------------------------------------------------------

    def debt_breakdown(self, customer_id: int) -> DebtBreakdown:
        """
        The three independently summed parts of a customer's balance.
        Recomputed from source rows on every call.
        """
        customer = self.require(customer_id)
        credit_sales = self.conn.execute(
            "SELECT COALESCE(SUM(CAST(net_amount AS REAL)), 0.0) FROM sales "
            "WHERE customer_id = ? AND payment_method = ?",
            (customer_id, PAYMENT_CREDIT),
        ).fetchone()[0]
        payments = self.conn.execute(
            "SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0) FROM debt_payments "
            "WHERE customer_id = ?",
            (customer_id,),
        ).fetchone()[0]
        return DebtBreakdown(
            customer_id=customer_id,
            opening_debt=float(customer.opening_debt or 0.0),
            credit_sales=float(credit_sales),
            payments=float(payments),
        )

    def outstanding_debt(self, customer_id: int) -> float:
        """max(0, opening debt + on-credit sales - payments)."""
        return self.debt_breakdown(customer_id).outstanding

    def debt_summary(self) -> list[dict]:
        """
        Every customer with an opening balance, an on-credit sale or a payment,
        largest remaining balance first. `remaining` is unclamped.
        """
        sql = """
        WITH t AS (
          SELECT
            c.customer_id,
            c.first_name || ' ' || c.last_name AS customer_name,
            c.phone,
            COALESCE(c.opening_debt, 0.0) + COALESCE((
              SELECT SUM(s.net_amount) FROM sales s
              WHERE s.customer_id = c.customer_id AND s.payment_method = :credit
            ), 0.0) AS total_debt,
            COALESCE((
              SELECT SUM(dp.amount) FROM debt_payments dp
              WHERE dp.customer_id = c.customer_id
            ), 0.0) AS total_paid
          FROM customers c
          WHERE COALESCE(c.opening_debt, 0.0) > 0
             OR EXISTS (SELECT 1 FROM sales s
                        WHERE s.customer_id = c.customer_id AND s.payment_method = :credit)
             OR EXISTS (SELECT 1 FROM debt_payments dp WHERE dp.customer_id = c.customer_id)
        )
        SELECT customer_id, customer_name, phone, total_debt, total_paid,
               total_debt - total_paid AS remaining
        FROM t
        ORDER BY remaining DESC, customer_id
        """
        rows = self.conn.execute(sql, {"credit": PAYMENT_CREDIT}).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["outstanding"] = max(0.0, float(d["remaining"]))
            out.append(d)
        return out
