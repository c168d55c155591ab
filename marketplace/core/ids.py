import enum
import uuid
from datetime import datetime
from typing import Dict, Optional, Protocol

from marketplace.core.config import settings


class IdKind(str, enum.Enum):
    ORDER = "order"
    ORDER_ITEM = "order_item"
    REVIEW = "review"


class IdGenerator(Protocol):
    def new_id(self, kind: IdKind) -> str:
        ...


class PrefixedIdGenerator:
    """Opaque ids of the form ``ORD20260101A1B2C3D4E5F6``.

    The random part is drawn from uuid4 so collisions are left to the
    primary-key constraint rather than checked with a lookup.
    """

    def __init__(self, prefixes: Optional[Dict[IdKind, str]] = None):
        self.prefixes = prefixes or {
            IdKind.ORDER: settings.ORDER_ID_PREFIX,
            IdKind.ORDER_ITEM: settings.ORDER_ITEM_ID_PREFIX,
            IdKind.REVIEW: settings.REVIEW_ID_PREFIX,
        }

    def new_id(self, kind: IdKind) -> str:
        timestamp = datetime.utcnow().strftime("%Y%m%d")
        random_part = uuid.uuid4().hex[:12].upper()
        return f"{self.prefixes[kind]}{timestamp}{random_part}"


default_id_generator = PrefixedIdGenerator()
