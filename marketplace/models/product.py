from sqlalchemy import Column, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from marketplace.db.base_class import Base


class Product(Base):
    """Sellable SKU. Catalogue reads live elsewhere; the core only needs
    the barcode, a name for reports and the owning seller."""
    __tablename__ = "products"

    barcode = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    seller = relationship("User", back_populates="products")


Index("ix_products_seller_id", Product.seller_id)
