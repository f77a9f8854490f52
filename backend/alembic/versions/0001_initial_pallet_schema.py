"""Initial pallet schema: zones, producers, wines, pallets, reservations, carts.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False)]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False)
        )
    return cols


def upgrade() -> None:
    op.create_table(
        "pallet_zones",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("zone_type", sa.String(20), nullable=False),
        sa.Column("center_lat", sa.Float()),
        sa.Column("center_lon", sa.Float()),
        sa.Column("radius_km", sa.Float()),
        sa.Column("country_code", sa.String(2)),
        sa.Column("postcode_prefixes", sa.JSON()),
        *_timestamps(),
        sa.CheckConstraint("radius_km IS NULL OR radius_km >= 0", name="ck_pallet_zones_radius"),
    )
    op.create_index("ix_pallet_zones_zone_type", "pallet_zones", ["zone_type"])
    op.create_index("ix_pallet_zones_country_code", "pallet_zones", ["country_code"])

    op.create_table(
        "producers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("region", sa.String(255)),
        sa.Column("country_code", sa.String(2)),
        sa.Column("lat", sa.Float()),
        sa.Column("lon", sa.Float()),
        sa.Column("pickup_zone_id", sa.String(36), sa.ForeignKey("pallet_zones.id")),
        sa.Column("order_rule", sa.String(20), server_default="multiple", nullable=False),
        sa.Column("order_quantity", sa.Integer(), server_default="6", nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_producers_pickup_zone_id", "producers", ["pickup_zone_id"])

    op.create_table(
        "producer_groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_table(
        "producer_group_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("producer_groups.id"), nullable=False),
        sa.Column("producer_id", sa.String(36), sa.ForeignKey("producers.id"), nullable=False, unique=True),
    )
    op.create_index("ix_producer_group_members_group_id", "producer_group_members", ["group_id"])

    op.create_table(
        "wines",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("producer_id", sa.String(36), sa.ForeignKey("producers.id"), nullable=False),
        sa.Column("wine_name", sa.String(255), nullable=False),
        sa.Column("vintage", sa.String(10)),
        sa.Column("base_price_cents", sa.Integer()),
    )
    op.create_index("ix_wines_producer_id", "wines", ["producer_id"])

    op.create_table(
        "pallets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("pickup_zone_id", sa.String(36), sa.ForeignKey("pallet_zones.id"), nullable=False),
        sa.Column("delivery_zone_id", sa.String(36), sa.ForeignKey("pallet_zones.id"), nullable=False),
        sa.Column("bottle_capacity", sa.Integer(), nullable=False),
        sa.Column("cost_cents", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(30), server_default="open", nullable=False),
        sa.Column("is_complete", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("payment_deadline", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_pallets_pickup_zone_id", "pallets", ["pickup_zone_id"])
    op.create_index("ix_pallets_delivery_zone_id", "pallets", ["delivery_zone_id"])
    op.create_index("ix_pallets_status", "pallets", ["status"])
    # Zone matching looks pallets up by route
    op.create_index(
        "ix_pallets_route_open", "pallets",
        ["pickup_zone_id", "delivery_zone_id", "is_complete"],
    )

    op.create_table(
        "order_reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("cart_id", sa.String(64)),
        sa.Column("pallet_id", sa.String(36), sa.ForeignKey("pallets.id")),
        sa.Column("pickup_zone_id", sa.String(36), sa.ForeignKey("pallet_zones.id")),
        sa.Column("delivery_zone_id", sa.String(36), sa.ForeignKey("pallet_zones.id")),
        sa.Column("status", sa.String(30), server_default="placed", nullable=False),
        sa.Column("payment_deadline", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_order_reservations_cart_id", "order_reservations", ["cart_id"])
    op.create_index("ix_order_reservations_pallet_id", "order_reservations", ["pallet_id"])
    op.create_index("ix_order_reservations_status", "order_reservations", ["status"])

    op.create_table(
        "order_reservation_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_id", sa.String(36),
            sa.ForeignKey("order_reservations.id"), nullable=False,
        ),
        sa.Column("wine_id", sa.String(36), sa.ForeignKey("wines.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
    )
    op.create_index(
        "ix_order_reservation_items_reservation_id",
        "order_reservation_items", ["reservation_id"],
    )

    op.create_table(
        "cart_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("cart_id", sa.String(64), nullable=False),
        sa.Column("wine_id", sa.String(36), sa.ForeignKey("wines.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="1", nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_cart_items_cart_id", "cart_items", ["cart_id"])


def downgrade() -> None:
    op.drop_table("cart_items")
    op.drop_table("order_reservation_items")
    op.drop_table("order_reservations")
    op.drop_table("pallets")
    op.drop_table("wines")
    op.drop_table("producer_group_members")
    op.drop_table("producer_groups")
    op.drop_table("producers")
    op.drop_table("pallet_zones")
