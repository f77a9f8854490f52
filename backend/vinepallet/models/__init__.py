"""Aggregate model imports for Alembic auto-detection."""

from vinepallet.models.zone import Zone  # noqa: F401
from vinepallet.models.producer import (  # noqa: F401
    Producer,
    ProducerGroup,
    ProducerGroupMember,
    Wine,
)
from vinepallet.models.pallet import Pallet  # noqa: F401
from vinepallet.models.reservation import (  # noqa: F401
    OrderReservation,
    OrderReservationItem,
)
from vinepallet.models.cart import CartItem  # noqa: F401
