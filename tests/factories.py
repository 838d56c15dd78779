"""Row builders shared by the test modules."""

from sqlalchemy import select

from itam.models import Hardware, Part, PartInventory, SoftwareInventory, SoftwareLicense

STAMP = "2026-03-01T09:00:00Z"


def add_hardware(db, hostname="PC-001", **fields):
    hardware = Hardware(hostname=hostname, category=fields.pop("category", "Desktop"), created_at=STAMP, **fields)
    db.add(hardware)
    db.commit()
    return hardware


def add_part(db, part_type="RAM", brand="Kingston", model="HX8", specifications="16GB", stock=None):
    """Catalog entry plus one inventory row per ``{condition: quantity}`` in ``stock``."""

    part = Part(part_type=part_type, brand=brand, model=model, specifications=specifications, created_at=STAMP)
    db.add(part)
    db.flush()
    for condition, quantity in (stock or {}).items():
        db.add(PartInventory(part_id=part.id, condition=condition, quantity=quantity, created_at=STAMP))
    db.commit()
    return part


def add_software(
    db,
    name="Office",
    software_type="Productivity",
    version="2021",
    requires_key_tracking=True,
    licenses=(),
):
    """Software title plus licenses given as ``(license_key, account_user, max, current)`` tuples."""

    software = SoftwareInventory(
        software_name=name,
        software_type=software_type,
        version=version,
        publisher="Contoso",
        requires_key_tracking=requires_key_tracking,
        created_at=STAMP,
    )
    db.add(software)
    db.flush()
    for key, account, max_activations, current in licenses:
        db.add(
            SoftwareLicense(
                software_inventory_id=software.id,
                license_key=key,
                account_user=account,
                max_activations=max_activations,
                current_activations=current,
                created_at=STAMP,
            )
        )
    db.commit()
    return software


def inventory_row(db, part_id, condition):
    stmt = (
        select(PartInventory)
        .where(PartInventory.part_id == part_id, PartInventory.condition == condition)
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


RAM = {"part_type": "RAM", "brand": "Kingston", "model": "HX8", "specifications": "16GB"}
