from app.db.schema import ActorRole
from app.models.actor import Actor
from app.models.shipment import ShipmentCreate, AssignmentIn


SUPPLIER_WALLET = "0x" + "a1" * 20
OTHER_SUPPLIER_WALLET = "0x" + "a2" * 20
TRANSPORTER_WALLET = "0x" + "b1" * 20
WAREHOUSE_WALLET = "0x" + "c1" * 20
RETAILER_WALLET = "0x" + "d1" * 20
ADMIN_WALLET = "0x" + "e1" * 20

SUPPLIER = Actor(wallet=SUPPLIER_WALLET, role=ActorRole.SUPPLIER)
OTHER_SUPPLIER = Actor(wallet=OTHER_SUPPLIER_WALLET, role=ActorRole.SUPPLIER)
TRANSPORTER = Actor(wallet=TRANSPORTER_WALLET, role=ActorRole.TRANSPORTER)
WAREHOUSE = Actor(wallet=WAREHOUSE_WALLET, role=ActorRole.WAREHOUSE)
RETAILER = Actor(wallet=RETAILER_WALLET, role=ActorRole.RETAILER)
ADMIN = Actor(wallet=ADMIN_WALLET, role=ActorRole.ADMIN)


def draft_payload(batch_id="SHP-A1", containers=3, quantity=40, assigned=True) -> ShipmentCreate:
    data = ShipmentCreate(
        batch_id=batch_id,
        number_of_containers=containers,
        quantity_per_container=quantity,
    )
    if assigned:
        data.transporter = AssignmentIn(wallet_address=TRANSPORTER_WALLET, name="Northline Freight")
        data.warehouse = AssignmentIn(wallet_address=WAREHOUSE_WALLET, name="Harbour Cold Store")
    return data
