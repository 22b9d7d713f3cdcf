# constants.py
"""Shared names: storage location, schema version, tags and payment methods."""

DATA_DIR = "data"
DB_FILE_NAME = "boutique.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.4"

# ---- stock movements ----
MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"

REASON_SALE = "sale"
REASON_RETURN = "return"
REASON_RESTOCK = "restock"
REASON_CORRECTION = "correction"
REASON_REMOVAL = "removal"

# Reasons counted as purchase-ins by the product statistics report
INBOUND_PURCHASE_REASONS = (REASON_RESTOCK, REASON_CORRECTION)

# ---- payments ----
PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_CREDIT = "credit"          # on-credit sale, adds to customer debt
PAYMENT_RETURN_CREDIT = "return_credit"

SALE_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_CREDIT)
DEBT_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_RETURN_CREDIT)

# ---- document numbers ----
SALE_NO_PREFIX = "S-"
RETURN_NO_PREFIX = "R-"
DOC_NO_SUFFIX_LEN = 8

# ---- return status labels (sales list) ----
RETURN_STATUS_NONE = "none"
RETURN_STATUS_PARTIAL = "partial"
RETURN_STATUS_FULL = "full"

# ---- return policies ----
RETURN_POLICY_SINGLE = "single"          # any earlier return of the line blocks another
RETURN_POLICY_CUMULATIVE = "cumulative"  # returned so far + requested <= sold

DEFAULT_MIN_QUANTITY = 5

# ---- seed data ----
DEFAULT_SIZES = (
    "XS", "S", "M", "L", "XL", "XXL", "XXXL",
    "38", "39", "40", "41", "42", "43", "44", "45", "46", "47", "48", "49", "50",
)
DEFAULT_CATEGORIES = ("Trousers", "Shirts", "Footwear", "Suits", "Accessories")
DEFAULT_COLORS = (
    ("Black", "#000000"),
    ("White", "#FFFFFF"),
    ("Red", "#FF0000"),
    ("Blue", "#0000FF"),
    ("Green", "#008000"),
    ("Yellow", "#FFFF00"),
    ("Orange", "#FFA500"),
    ("Purple", "#800080"),
    ("Pink", "#FFC0CB"),
    ("Grey", "#808080"),
)
DEFAULT_STORE_NAME = "Boutique"
