from loguru import logger
from sqlmodel import Session, select

from app.db.core import engine, create_db_and_tables
from app.db.schema import ActorRole, Shipment
from app.models.actor import Actor
from app.models.shipment import ShipmentCreate, AssignmentIn
from app.services.actor import ActorService
from app.services.shipment import ShipmentService


# Demo wallets (Hardhat default accounts)
DEMO_ACTORS = {
    ActorRole.SUPPLIER: "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266",
    ActorRole.TRANSPORTER: "0x70997970c51812dc3a010c7d01b50e0d17dc79c8",
    ActorRole.WAREHOUSE: "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc",
    ActorRole.RETAILER: "0x90f79bf6eb2c4f827fbf4c1a5b2ad6e63ee5f7ed",
    ActorRole.ADMIN: "0x15d34aaf54267db7d7c367839aaf71a00a2c6a65",
}

DEMO_SHIPMENT = {
    "batch_id": "SHP-A1",
    "number_of_containers": 3,
    "quantity_per_container": 40,
    "transporter": {"wallet_address": DEMO_ACTORS[ActorRole.TRANSPORTER], "name": "Northline Freight"},
    "warehouse": {"wallet_address": DEMO_ACTORS[ActorRole.WAREHOUSE], "name": "Harbour Cold Store"},
}


def seed_shipment(session: Session):
    """Creates the demo draft once. Locking it is left to the API."""
    logger.info("--- Seeding Demo Shipment ---")
    supplier = Actor(wallet=DEMO_ACTORS[ActorRole.SUPPLIER], role=ActorRole.SUPPLIER)

    existing = session.exec(
        select(Shipment)
        .where(Shipment.batch_id == DEMO_SHIPMENT["batch_id"])
        .where(Shipment.supplier_wallet == supplier.wallet)
    ).first()
    if existing:
        logger.info(f"Existing Shipment: {existing.shipment_hash}")
        return

    data = ShipmentCreate(
        batch_id=DEMO_SHIPMENT["batch_id"],
        number_of_containers=DEMO_SHIPMENT["number_of_containers"],
        quantity_per_container=DEMO_SHIPMENT["quantity_per_container"],
        transporter=AssignmentIn(**DEMO_SHIPMENT["transporter"]),
        warehouse=AssignmentIn(**DEMO_SHIPMENT["warehouse"]),
    )
    shipment = ShipmentService(session).create_draft(supplier, data)
    logger.info(f"Created Shipment: {shipment.shipment_hash}")


def print_tokens():
    """Demo bearer tokens, one per role, for trying the API locally."""
    service = ActorService()
    for role, wallet in DEMO_ACTORS.items():
        logger.info(f"{role.value:<12} {wallet}\n{service.create_access_token(wallet, role)}")


def main():
    create_db_and_tables()

    with Session(engine) as session:
        seed_shipment(session)

    print_tokens()
    logger.success("Seeding Complete!")


if __name__ == "__main__":
    main()
