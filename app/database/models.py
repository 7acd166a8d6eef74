"""
============================================================================
SiteLedger - ORM Models
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Money columns are NUMERIC(14,2), quantities and unit
                   rates NUMERIC(14,4); values are decimal.Decimal in Python
Side Effects: None (declarations only)

TABLE GROUPS:
    - Access: roles, permissions, users, site_employees
    - Masters: sites, units, items, vendors, cashbook_heads, manpower_suppliers
    - BOQ: boqs, boq_items
    - Cashbook: cashbooks, cashbook_details, cashbook_budgets, cashbook_budget_items
    - Site budget: site_budgets, site_budget_alerts
    - Stock: site_items, stock_ledgers, inward_delivery_challans(+details),
      daily_consumptions(+details), stock_adjustments(+details)
    - Purchasing: indents(+items), purchase_orders(+details)
    - Manpower: manpower, manpower_assignments, manpower_transfers(+items)
    - Assets: assets, asset_transfers(+items)

============================================================================
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns hold UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def Money(nullable: bool = False, default=0):
    return Column(Numeric(14, 2, asdecimal=True), nullable=nullable, default=default)


def Qty(nullable: bool = False, default=0):
    return Column(Numeric(14, 4, asdecimal=True), nullable=nullable, default=default)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


# ============================================================================
# ACCESS
# ============================================================================

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

user_permissions = Table(
    "user_permissions",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), unique=True, nullable=False)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True)
    name = Column(String(60), unique=True, nullable=False)

    permissions = relationship(Permission, secondary=role_permissions, lazy="selectin")


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True, nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    role = relationship(Role, lazy="joined")
    permissions = relationship(Permission, secondary=user_permissions, lazy="selectin")
    site_links = relationship("SiteEmployee", back_populates="user", cascade="all, delete-orphan")


class SiteEmployee(Base):
    __tablename__ = "site_employees"
    __table_args__ = (UniqueConstraint("site_id", "user_id"),)

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship(User, back_populates="site_links")
    site = relationship("Site")


# ============================================================================
# MASTERS
# ============================================================================

class Site(TimestampMixin, Base):
    __tablename__ = "sites"

    id = Column(Integer, primary_key=True)
    site = Column(String(191), nullable=False)
    site_code = Column(String(20), nullable=True, unique=True)
    short_name = Column(String(60), nullable=True)
    status = Column(String(30), nullable=False, default="Ongoing")


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True)
    unit_name = Column(String(60), unique=True, nullable=False)


class Item(TimestampMixin, Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    item_code = Column(String(60), unique=True, nullable=False)
    item = Column(String(191), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)

    unit = relationship(Unit, lazy="joined")


class Vendor(TimestampMixin, Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True)
    vendor_name = Column(String(191), nullable=False)
    gst_no = Column(String(20), nullable=True)


class CashbookHead(Base):
    __tablename__ = "cashbook_heads"

    id = Column(Integer, primary_key=True)
    cashbook_head_name = Column(String(191), unique=True, nullable=False)


# ============================================================================
# BOQ
# ============================================================================

class Boq(TimestampMixin, Base):
    __tablename__ = "boqs"

    id = Column(Integer, primary_key=True)
    boq_no = Column(String(60), unique=True, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    work_name = Column(String(191), nullable=True)
    work_order_no = Column(String(60), nullable=True)
    work_order_date = Column(Date, nullable=True)
    total_work_value = Money()
    gst_rate = Column(Numeric(5, 2, asdecimal=True), nullable=False, default=0)

    site = relationship(Site, lazy="joined")
    items = relationship(
        "BoqItem", back_populates="boq", cascade="all, delete-orphan", order_by="BoqItem.id"
    )


class BoqItem(Base):
    __tablename__ = "boq_items"

    id = Column(Integer, primary_key=True)
    boq_id = Column(Integer, ForeignKey("boqs.id", ondelete="CASCADE"), nullable=False)
    activity_id = Column(String(60), nullable=True)
    client_sr_no = Column(String(60), nullable=True)
    item = Column(Text, nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    qty = Qty()
    rate = Money()
    amount = Money()
    executed_qty = Qty()
    is_group = Column(Boolean, nullable=False, default=False)

    boq = relationship(Boq, back_populates="items")
    unit = relationship(Unit, lazy="joined")


# ============================================================================
# CASHBOOK
# ============================================================================

class Cashbook(TimestampMixin, Base):
    __tablename__ = "cashbooks"

    id = Column(Integer, primary_key=True)
    voucher_no = Column(String(30), nullable=True, index=True)
    voucher_date = Column(Date, nullable=False, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=True, index=True)
    boq_id = Column(Integer, ForeignKey("boqs.id"), nullable=True, index=True)
    attach_voucher_copy_url = Column(String(255), nullable=True)
    is_approved1 = Column(Boolean, nullable=False, default=False)
    approved1_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved1_at = Column(DateTime, nullable=True)
    is_approved2 = Column(Boolean, nullable=False, default=False)
    approved2_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved2_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    site = relationship(Site, lazy="joined")
    boq = relationship(Boq, lazy="joined")
    details = relationship(
        "CashbookDetail",
        back_populates="cashbook",
        cascade="all, delete-orphan",
        order_by="CashbookDetail.id",
    )


class CashbookDetail(Base):
    __tablename__ = "cashbook_details"

    id = Column(Integer, primary_key=True)
    cashbook_id = Column(Integer, ForeignKey("cashbooks.id", ondelete="CASCADE"), nullable=False)
    cashbook_head_id = Column(Integer, ForeignKey("cashbook_heads.id"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    opening_balance = Money(nullable=True, default=None)
    closing_balance = Money(nullable=True, default=None)
    amount_received = Money(nullable=True, default=None)
    amount_paid = Money(nullable=True, default=None)
    document_url = Column(String(255), nullable=True)

    cashbook = relationship(Cashbook, back_populates="details")
    cashbook_head = relationship(CashbookHead, lazy="joined")


class CashbookBudget(TimestampMixin, Base):
    __tablename__ = "cashbook_budgets"
    __table_args__ = (UniqueConstraint("month", "site_id", "boq_id"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(191), nullable=False)
    month = Column(String(7), nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    boq_id = Column(Integer, ForeignKey("boqs.id"), nullable=True)
    total_budget = Money()
    approved_budget_amount = Money(nullable=True, default=None)
    approved1_budget_amount = Money(nullable=True, default=None)
    total_received_amount = Money()
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_datetime = Column(DateTime, nullable=True)
    approved1_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved1_datetime = Column(DateTime, nullable=True)
    accepted_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    accepted_datetime = Column(DateTime, nullable=True)
    remarks = Column(Text, nullable=True)

    site = relationship(Site, lazy="joined")
    boq = relationship(Boq, lazy="joined")
    items = relationship(
        "CashbookBudgetItem",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="CashbookBudgetItem.id",
    )


class CashbookBudgetItem(Base):
    __tablename__ = "cashbook_budget_items"

    id = Column(Integer, primary_key=True)
    budget_id = Column(Integer, ForeignKey("cashbook_budgets.id", ondelete="CASCADE"), nullable=False)
    cashbook_head_id = Column(Integer, ForeignKey("cashbook_heads.id"), nullable=False)
    description = Column(Text, nullable=True)
    amount = Money()
    approved_amount = Money(nullable=True, default=None)
    approved1_amount = Money(nullable=True, default=None)
    received_amount = Money()

    budget = relationship(CashbookBudget, back_populates="items")
    cashbook_head = relationship(CashbookHead, lazy="joined")


# ============================================================================
# SITE BUDGET
# ============================================================================

class SiteBudget(TimestampMixin, Base):
    __tablename__ = "site_budgets"
    __table_args__ = (UniqueConstraint("site_id", "boq_id", "item_id"),)

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    boq_id = Column(Integer, ForeignKey("boqs.id"), nullable=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    budget_qty = Qty()
    budget_rate = Money()
    purchase_rate = Money()
    budget_value = Money()
    ordered_qty = Qty()
    avg_rate = Money()
    ordered_value = Money()
    qty50_alert = Column(Boolean, nullable=False, default=False)
    value50_alert = Column(Boolean, nullable=False, default=False)
    qty75_alert = Column(Boolean, nullable=False, default=False)
    value75_alert = Column(Boolean, nullable=False, default=False)

    site = relationship(Site, lazy="joined")
    item = relationship(Item, lazy="joined")
    alerts = relationship(
        "SiteBudgetAlert", back_populates="site_budget", cascade="all, delete-orphan"
    )


class SiteBudgetAlert(Base):
    __tablename__ = "site_budget_alerts"
    __table_args__ = (UniqueConstraint("site_budget_id", "kind", "threshold"),)

    id = Column(Integer, primary_key=True)
    site_budget_id = Column(Integer, ForeignKey("site_budgets.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(10), nullable=False)
    threshold = Column(Integer, nullable=False)
    consumed_percent = Column(Numeric(7, 2, asdecimal=True), nullable=False)
    raised_at = Column(DateTime, nullable=False, default=utcnow)

    site_budget = relationship(SiteBudget, back_populates="alerts")


# ============================================================================
# STOCK
# ============================================================================

class SiteItem(Base):
    __tablename__ = "site_items"
    __table_args__ = (UniqueConstraint("site_id", "item_id"),)

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    opening_stock = Qty()
    opening_rate = Qty()
    opening_value = Money()
    closing_stock = Qty()
    closing_value = Money()
    unit_rate = Qty()
    log = Column(String(60), nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    site = relationship(Site, lazy="joined")
    item = relationship(Item, lazy="joined")


class StockLedger(Base):
    __tablename__ = "stock_ledgers"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    transaction_date = Column(Date, nullable=False)
    received_qty = Qty(nullable=True, default=None)
    issued_qty = Qty(nullable=True, default=None)
    unit_rate = Qty()
    document_type = Column(String(60), nullable=False)
    inward_delivery_challan_id = Column(
        Integer, ForeignKey("inward_delivery_challans.id", ondelete="CASCADE"), nullable=True
    )
    daily_consumption_id = Column(
        Integer, ForeignKey("daily_consumptions.id", ondelete="CASCADE"), nullable=True
    )
    stock_adjustment_id = Column(
        Integer, ForeignKey("stock_adjustments.id", ondelete="CASCADE"), nullable=True
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)


class InwardDeliveryChallan(TimestampMixin, Base):
    __tablename__ = "inward_delivery_challans"

    id = Column(Integer, primary_key=True)
    inward_challan_no = Column(String(30), unique=True, nullable=False)
    inward_challan_date = Column(Date, nullable=False)
    challan_no = Column(String(60), nullable=False)
    challan_date = Column(Date, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    total_amount = Money()
    remarks = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    details = relationship(
        "InwardDeliveryChallanDetail", back_populates="challan", cascade="all, delete-orphan"
    )


class InwardDeliveryChallanDetail(Base):
    __tablename__ = "inward_delivery_challan_details"

    id = Column(Integer, primary_key=True)
    inward_delivery_challan_id = Column(
        Integer, ForeignKey("inward_delivery_challans.id", ondelete="CASCADE"), nullable=False
    )
    po_details_id = Column(Integer, ForeignKey("purchase_order_details.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    receiving_qty = Qty()
    rate = Money()
    amount = Money()

    challan = relationship(InwardDeliveryChallan, back_populates="details")


class DailyConsumption(TimestampMixin, Base):
    __tablename__ = "daily_consumptions"

    id = Column(Integer, primary_key=True)
    daily_consumption_no = Column(String(30), unique=True, nullable=False)
    daily_consumption_date = Column(Date, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    total_amount = Money()
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    details = relationship(
        "DailyConsumptionDetail", back_populates="daily_consumption", cascade="all, delete-orphan"
    )


class DailyConsumptionDetail(Base):
    __tablename__ = "daily_consumption_details"

    id = Column(Integer, primary_key=True)
    daily_consumption_id = Column(
        Integer, ForeignKey("daily_consumptions.id", ondelete="CASCADE"), nullable=False
    )
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    qty = Qty()
    rate = Money()
    amount = Money()

    daily_consumption = relationship(DailyConsumption, back_populates="details")


class StockAdjustment(TimestampMixin, Base):
    __tablename__ = "stock_adjustments"

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    details = relationship(
        "StockAdjustmentDetail", back_populates="stock_adjustment", cascade="all, delete-orphan"
    )


class StockAdjustmentDetail(Base):
    __tablename__ = "stock_adjustment_details"

    id = Column(Integer, primary_key=True)
    stock_adjustment_id = Column(
        Integer, ForeignKey("stock_adjustments.id", ondelete="CASCADE"), nullable=False
    )
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    received_qty = Qty(nullable=True, default=None)
    issued_qty = Qty(nullable=True, default=None)
    rate = Money()
    amount = Money()
    remarks = Column(Text, nullable=True)

    stock_adjustment = relationship(StockAdjustment, back_populates="details")


# ============================================================================
# PURCHASING
# ============================================================================

class Indent(TimestampMixin, Base):
    __tablename__ = "indents"

    id = Column(Integer, primary_key=True)
    indent_no = Column(String(30), unique=True, nullable=False)
    indent_date = Column(Date, nullable=False)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    delivery_date = Column(Date, nullable=True)
    remarks = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="DRAFT")
    approved1_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved1_at = Column(DateTime, nullable=True)
    approved2_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved2_at = Column(DateTime, nullable=True)
    completed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    suspended_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    site = relationship(Site, lazy="joined")
    items = relationship(
        "IndentItem", back_populates="indent", cascade="all, delete-orphan", order_by="IndentItem.id"
    )


class IndentItem(Base):
    __tablename__ = "indent_items"

    id = Column(Integer, primary_key=True)
    indent_id = Column(Integer, ForeignKey("indents.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    closing_stock = Qty()
    indent_qty = Qty()
    approved_qty = Qty(nullable=True, default=None)
    delivery_date = Column(Date, nullable=True)
    remark = Column(Text, nullable=True)

    indent = relationship(Indent, back_populates="items")


class PurchaseOrder(TimestampMixin, Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True)
    purchase_order_no = Column(String(60), unique=True, nullable=False)
    purchase_order_date = Column(Date, nullable=False)
    delivery_date = Column(Date, nullable=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    boq_id = Column(Integer, ForeignKey("boqs.id"), nullable=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    indent_id = Column(Integer, ForeignKey("indents.id"), nullable=True)
    amount = Money()
    total_cgst_amount = Money()
    total_sgst_amount = Money()
    total_igst_amount = Money()
    amount_in_words = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, default="DRAFT")
    is_approved1 = Column(Boolean, nullable=False, default=False)
    approved1_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved1_at = Column(DateTime, nullable=True)
    is_approved2 = Column(Boolean, nullable=False, default=False)
    approved2_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved2_at = Column(DateTime, nullable=True)
    is_complete = Column(Boolean, nullable=False, default=False)
    completed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    suspended_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    remarks = Column(Text, nullable=True)

    site = relationship(Site, lazy="joined")
    vendor = relationship(Vendor, lazy="joined")
    details = relationship(
        "PurchaseOrderDetail",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderDetail.serial_no",
    )


class PurchaseOrderDetail(Base):
    __tablename__ = "purchase_order_details"

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(
        Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False
    )
    serial_no = Column(Integer, nullable=False, default=1)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    remark = Column(Text, nullable=True)
    qty = Qty()
    rate = Money()
    discount_percent = Column(Numeric(5, 2, asdecimal=True), nullable=False, default=0)
    disc_amount = Money()
    taxable_amount = Money()
    cgst_percent = Column(Numeric(5, 2, asdecimal=True), nullable=False, default=0)
    cgst_amt = Money()
    sgst_percent = Column(Numeric(5, 2, asdecimal=True), nullable=False, default=0)
    sgst_amt = Money()
    igst_percent = Column(Numeric(5, 2, asdecimal=True), nullable=False, default=0)
    igst_amt = Money()
    amount = Money()
    received_qty = Qty()

    purchase_order = relationship(PurchaseOrder, back_populates="details")
    item = relationship(Item, lazy="joined")


# ============================================================================
# MANPOWER
# ============================================================================

class ManpowerSupplier(Base):
    __tablename__ = "manpower_suppliers"

    id = Column(Integer, primary_key=True)
    supplier_name = Column(String(191), nullable=False)
    vendor_code = Column(String(60), nullable=True)


class Manpower(TimestampMixin, Base):
    __tablename__ = "manpower"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=False)
    mobile_number = Column(String(20), nullable=True)
    supplier_id = Column(Integer, ForeignKey("manpower_suppliers.id"), nullable=True)
    category = Column(String(60), nullable=True)
    skill_set = Column(String(100), nullable=True)
    wage = Money(nullable=True, default=None)
    min_wage = Money(nullable=True, default=None)
    hours = Money(nullable=True, default=None)
    esic = Money(nullable=True, default=None)
    pf = Column(Boolean, nullable=False, default=False)
    pt = Money(nullable=True, default=None)
    hra = Money(nullable=True, default=None)
    mlwf = Money(nullable=True, default=None)
    is_assigned = Column(Boolean, nullable=False, default=False)
    current_site_id = Column(Integer, ForeignKey("sites.id"), nullable=True)
    assigned_at = Column(DateTime, nullable=True)

    supplier = relationship(ManpowerSupplier, lazy="joined")


class ManpowerAssignment(Base):
    __tablename__ = "manpower_assignments"

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    manpower_id = Column(Integer, ForeignKey("manpower.id"), nullable=False, index=True)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)
    unassigned_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    category = Column(String(60), nullable=True)
    skill_set = Column(String(100), nullable=True)
    wage = Money(nullable=True, default=None)
    min_wage = Money(nullable=True, default=None)
    hours = Money(nullable=True, default=None)
    esic = Money(nullable=True, default=None)
    pf = Column(Boolean, nullable=False, default=False)
    pt = Money(nullable=True, default=None)
    hra = Money(nullable=True, default=None)
    mlwf = Money(nullable=True, default=None)

    manpower = relationship(Manpower, lazy="joined")
    site = relationship(Site, lazy="joined")


class ManpowerTransfer(TimestampMixin, Base):
    __tablename__ = "manpower_transfers"

    id = Column(Integer, primary_key=True)
    challan_no = Column(String(30), unique=True, nullable=False)
    challan_date = Column(Date, nullable=False)
    from_site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    to_site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    status = Column(String(20), nullable=False, default="Pending")
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    remarks = Column(Text, nullable=True)

    items = relationship(
        "ManpowerTransferItem", back_populates="transfer", cascade="all, delete-orphan"
    )


class ManpowerTransferItem(Base):
    __tablename__ = "manpower_transfer_items"

    id = Column(Integer, primary_key=True)
    manpower_transfer_id = Column(
        Integer, ForeignKey("manpower_transfers.id", ondelete="CASCADE"), nullable=False
    )
    manpower_id = Column(Integer, ForeignKey("manpower.id"), nullable=False)
    category = Column(String(60), nullable=True)
    skill_set = Column(String(100), nullable=True)
    wage = Money(nullable=True, default=None)
    min_wage = Money(nullable=True, default=None)
    hours = Money(nullable=True, default=None)
    esic = Money(nullable=True, default=None)
    pf = Column(Boolean, nullable=False, default=False)
    pt = Money(nullable=True, default=None)
    hra = Money(nullable=True, default=None)
    mlwf = Money(nullable=True, default=None)

    transfer = relationship(ManpowerTransfer, back_populates="items")


# ============================================================================
# ASSETS
# ============================================================================

class Asset(TimestampMixin, Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True)
    asset_no = Column(String(60), unique=True, nullable=False)
    asset_name = Column(String(191), nullable=False)
    make = Column(String(191), nullable=True)
    description = Column(Text, nullable=True)
    purchase_date = Column(Date, nullable=True)
    invoice_no = Column(String(100), nullable=True)
    supplier = Column(String(191), nullable=True)
    next_maintenance_date = Column(Date, nullable=True)
    status = Column(String(30), nullable=False, default="Working")
    use_status = Column(String(30), nullable=False, default="In Use")
    transfer_status = Column(String(30), nullable=False, default="Available")
    current_site_id = Column(Integer, ForeignKey("sites.id"), nullable=True)


class AssetTransfer(TimestampMixin, Base):
    __tablename__ = "asset_transfers"

    id = Column(Integer, primary_key=True)
    challan_no = Column(String(30), unique=True, nullable=False)
    challan_date = Column(Date, nullable=False)
    transfer_type = Column(String(20), nullable=False)
    from_site_id = Column(Integer, ForeignKey("sites.id"), nullable=True)
    to_site_id = Column(Integer, ForeignKey("sites.id"), nullable=False)
    status = Column(String(20), nullable=False, default="Pending")
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    remarks = Column(Text, nullable=True)

    items = relationship(
        "AssetTransferItem", back_populates="transfer", cascade="all, delete-orphan"
    )


class AssetTransferItem(Base):
    __tablename__ = "asset_transfer_items"

    id = Column(Integer, primary_key=True)
    asset_transfer_id = Column(
        Integer, ForeignKey("asset_transfers.id", ondelete="CASCADE"), nullable=False
    )
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)

    transfer = relationship(AssetTransfer, back_populates="items")
    asset = relationship(Asset, lazy="joined")
