from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from autoservice.models import (
    Activity,
    Client,
    Dealership,
    Discount,
    OrderDetail,
    Product,
    Role,
    Service,
    Staff,
    Stock,
    Vehicle,
)
from autoservice.orders import create_order


@dataclass
class World:
    manager_role_id: int
    analyst_role_id: int
    mechanic_role_id: int
    main_dealership_id: int
    branch_dealership_id: int
    manager_id: int
    branch_manager_id: int
    analyst_id: int
    mechanic_id: int
    client_id: int
    vehicle_id: int
    oil_service_id: int
    brake_service_id: int
    filter_id: int


def make_staff(db: Session, national_id: str, role_id: int, employer_id, **extra) -> Staff:
    staff = Staff(
        national_id=national_id,
        full_name=extra.pop("full_name", f"Staff {national_id}"),
        main_phone_no="+58-414-1234567",
        email=f"{national_id.replace('-', '').lower()}@taller.com",
        address="Av. Principal",
        salary=Decimal("900"),
        role_id=role_id,
        employer_dealership_id=employer_id,
        **extra,
    )
    db.add(staff)
    db.flush()
    return staff


def build_world(db: Session) -> World:
    manager_role = Role(name="Encargado", description="Empleado que gestiona un concesionario.")
    analyst_role = Role(name="Analista", description="Recibe vehiculos y genera ordenes.")
    mechanic_role = Role(name="Mecanico", description="Ejecuta las actividades.")
    db.add_all([manager_role, analyst_role, mechanic_role])
    db.flush()

    main = Dealership(rif="J-10000001", name="Taller Centro")
    branch = Dealership(rif="J-20000002", name="Taller Este")
    db.add_all([main, branch])
    db.flush()

    manager = make_staff(db, "V-1000001", manager_role.id, main.id)
    branch_manager = make_staff(db, "V-1000002", manager_role.id, branch.id)
    analyst = make_staff(db, "V-2000001", analyst_role.id, main.id)
    mechanic = make_staff(db, "E-3000001", mechanic_role.id, main.id)
    main.manager_id = manager.id
    branch.manager_id = branch_manager.id

    client = Client(
        national_id="V-9000001",
        full_name="Ana Perez",
        main_phone_no="0414-1234567",
        email="ana@correo.com",
    )
    db.add(client)
    db.flush()
    vehicle = Vehicle(plate="AB123CD", brand="Toyota", owner_id=client.id)
    oil = Service(name="Cambio de aceite")
    brakes = Service(name="Frenos")
    filter_part = Product(name="Filtro de aceite")
    db.add_all([vehicle, oil, brakes, filter_part])
    db.flush()

    db.add_all(
        [
            Activity(service_id=oil.id, activity_number=1, description="Drenar aceite"),
            Activity(service_id=oil.id, activity_number=2, description="Cambiar filtro"),
            Activity(service_id=brakes.id, activity_number=1, description="Cambiar pastillas"),
            Stock(
                product_id=filter_part.id,
                dealership_id=main.id,
                product_cost=Decimal("12.50"),
                product_count=10,
                vendor_name="Repuestos CA",
                min_capacity=2,
                max_capacity=50,
            ),
        ]
    )
    db.commit()
    return World(
        manager_role_id=manager_role.id,
        analyst_role_id=analyst_role.id,
        mechanic_role_id=mechanic_role.id,
        main_dealership_id=main.id,
        branch_dealership_id=branch.id,
        manager_id=manager.id,
        branch_manager_id=branch_manager.id,
        analyst_id=analyst.id,
        mechanic_id=mechanic.id,
        client_id=client.id,
        vehicle_id=vehicle.id,
        oil_service_id=oil.id,
        brake_service_id=brakes.id,
        filter_id=filter_part.id,
    )


def open_order(
    db: Session,
    world: World,
    checkin: datetime = datetime(2026, 5, 20, 9, 0),
    analyst_id=None,
    vehicle_id=None,
):
    return create_order(
        db,
        vehicle_id=vehicle_id or world.vehicle_id,
        analyst_id=analyst_id or world.analyst_id,
        reservation_timestamp=checkin.replace(hour=8),
        vehicle_kilometrage=Decimal("45200"),
        checkin_timestamp=checkin,
    )


def add_line(db: Session, order_id: int, service_id: int, activity_number: int, price, hours) -> OrderDetail:
    detail = OrderDetail(
        order_id=order_id,
        service_id=service_id,
        activity_number=activity_number,
        price_per_hour=Decimal(str(price)),
        worked_hours=Decimal(str(hours)),
    )
    db.add(detail)
    db.flush()
    return detail


def add_tier(db: Session, dealership_id: int, usage: int, percentage: str) -> Discount:
    tier = Discount(
        dealership_id=dealership_id,
        required_annual_service_usage_count=usage,
        discount_percentage=Decimal(percentage),
    )
    db.add(tier)
    db.flush()
    return tier
