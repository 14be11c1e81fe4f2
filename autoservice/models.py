from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Integer,
    Numeric,
    SmallInteger,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from autoservice.db import Base
from autoservice.validators import (
    ensure_email,
    ensure_national_id,
    ensure_phone_no,
    ensure_rif,
)

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
MONEY = Numeric(14, 2)
RATIO = Numeric(5, 4)


def _fk(target: str, **kwargs) -> ForeignKey:
    return ForeignKey(target, onupdate="CASCADE", ondelete="RESTRICT", **kwargs)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")


class Dealership(Base):
    __tablename__ = "dealerships"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    rif: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Nullable only to break the staff/dealership cycle; updates to null are refused.
    manager_id: Mapped[int | None] = mapped_column(
        BigInteger, _fk("staff.id", use_alter=True, name="dealerships_manager_id_fk")
    )

    @validates("rif")
    def _validate_rif(self, key, value):
        return ensure_rif(value)


class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = (CheckConstraint("salary >= 0", name="valid_salary"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    national_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    main_phone_no: Mapped[str] = mapped_column(Text, nullable=False)
    secondary_phone_no: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    role_id: Mapped[int] = mapped_column(BigInteger, _fk("roles.id"), nullable=False)
    employer_dealership_id: Mapped[int | None] = mapped_column(
        BigInteger, _fk("dealerships.id")
    )
    helped_dealership_id: Mapped[int | None] = mapped_column(
        BigInteger, _fk("dealerships.id")
    )

    @validates("national_id")
    def _validate_national_id(self, key, value):
        return ensure_national_id(value)

    @validates("email")
    def _validate_email(self, key, value):
        return ensure_email(value)

    @validates("main_phone_no", "secondary_phone_no")
    def _validate_phone_no(self, key, value):
        if value is None and key == "secondary_phone_no":
            return value
        return ensure_phone_no(value)


class Manager(Base):
    __tablename__ = "managers"

    staff_id: Mapped[int] = mapped_column(BigInteger, _fk("staff.id"), primary_key=True)
    dealership_id: Mapped[int] = mapped_column(
        BigInteger, _fk("dealerships.id"), nullable=False, unique=True
    )


class Operative(Base):
    __tablename__ = "operatives"

    staff_id: Mapped[int] = mapped_column(BigInteger, _fk("staff.id"), primary_key=True)
    dealership_id: Mapped[int] = mapped_column(
        BigInteger, _fk("dealerships.id"), nullable=False
    )


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    national_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    main_phone_no: Mapped[str] = mapped_column(Text, nullable=False)
    secondary_phone_no: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str] = mapped_column(Text, nullable=False)

    @validates("national_id")
    def _validate_national_id(self, key, value):
        return ensure_national_id(value)

    @validates("email")
    def _validate_email(self, key, value):
        return ensure_email(value)

    @validates("main_phone_no", "secondary_phone_no")
    def _validate_phone_no(self, key, value):
        if value is None and key == "secondary_phone_no":
            return value
        return ensure_phone_no(value)


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    plate: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    brand: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[int] = mapped_column(BigInteger, _fk("clients.id"), nullable=False)


class Service(Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class Activity(Base):
    __tablename__ = "activities"

    service_id: Mapped[int] = mapped_column(BigInteger, _fk("services.id"), primary_key=True)
    activity_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class Stock(Base):
    __tablename__ = "stock"
    # product_count may drop under min_capacity; replenishment is handled elsewhere.
    __table_args__ = (
        CheckConstraint("product_cost >= 0", name="valid_product_cost"),
        CheckConstraint("product_count >= 0", name="valid_product_count"),
        CheckConstraint("min_capacity >= 0", name="valid_min_capacity"),
        CheckConstraint("max_capacity >= min_capacity", name="valid_max_capacity"),
    )

    product_id: Mapped[int] = mapped_column(BigInteger, _fk("products.id"), primary_key=True)
    dealership_id: Mapped[int] = mapped_column(
        BigInteger, _fk("dealerships.id"), primary_key=True
    )
    product_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    product_count: Mapped[int] = mapped_column(Integer, nullable=False)
    vendor_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    min_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("vehicle_kilometrage > 0", name="valid_vehicle_kilometrage"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int] = mapped_column(BigInteger, _fk("vehicles.id"), nullable=False)
    analyst_id: Mapped[int] = mapped_column(BigInteger, _fk("staff.id"), nullable=False)
    dealership_id: Mapped[int] = mapped_column(
        BigInteger, _fk("dealerships.id"), nullable=False
    )
    reservation_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    checkin_timestamp: Mapped[datetime | None] = mapped_column(DateTime)
    estimated_checkout_timestamp: Mapped[datetime | None] = mapped_column(DateTime)
    checkout_timestamp: Mapped[datetime | None] = mapped_column(DateTime)
    vehicle_kilometrage: Mapped[Decimal] = mapped_column(Numeric, nullable=False)


class OrderDetail(Base):
    __tablename__ = "orders_details"
    __table_args__ = (
        ForeignKeyConstraint(
            ["service_id", "activity_number"],
            ["activities.service_id", "activities.activity_number"],
            onupdate="CASCADE",
            ondelete="RESTRICT",
        ),
        CheckConstraint("price_per_hour >= 0", name="valid_price_per_hour"),
        CheckConstraint("worked_hours > 0", name="valid_worked_hours"),
    )

    order_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("orders.id", onupdate="CASCADE", ondelete="CASCADE"),
        primary_key=True,
    )
    service_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    activity_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    price_per_hour: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    worked_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)


class ProductApplication(Base):
    __tablename__ = "products_applications"
    __table_args__ = (
        ForeignKeyConstraint(
            ["order_id", "service_id", "activity_number"],
            [
                "orders_details.order_id",
                "orders_details.service_id",
                "orders_details.activity_number",
            ],
            onupdate="CASCADE",
            ondelete="RESTRICT",
        ),
        CheckConstraint("application_count > 0", name="valid_application_count"),
        CheckConstraint("product_cost >= 0", name="valid_product_cost"),
    )

    order_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    service_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    activity_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, _fk("products.id"), primary_key=True)
    employee_id: Mapped[int] = mapped_column(BigInteger, _fk("staff.id"), primary_key=True)
    application_count: Mapped[int] = mapped_column(Integer, nullable=False)
    product_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)


class Discount(Base):
    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint(
            "discount_percentage BETWEEN 0 AND 1", name="valid_discount_percentage"
        ),
        CheckConstraint(
            "required_annual_service_usage_count >= 0",
            name="valid_required_annual_service_usage_count",
        ),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    dealership_id: Mapped[int] = mapped_column(
        BigInteger, _fk("dealerships.id"), nullable=False
    )
    discount_percentage: Mapped[Decimal] = mapped_column(RATIO, nullable=False)
    required_annual_service_usage_count: Mapped[int] = mapped_column(
        SmallInteger, nullable=False
    )


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("amount_due >= 0", name="valid_amount_due"),
        CheckConstraint("discount BETWEEN 0 AND 1", name="valid_discount"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, _fk("orders.id"), nullable=False, unique=True
    )
    amount_due: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    discount: Mapped[Decimal] = mapped_column(RATIO, nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
