"""
SQLAlchemy models for the tables the storefront reads.

The hosted Postgres (Supabase) owns these tables; the models exist so the
DATABASE_URL store can build typed queries and so tests and local setups can
create the same shape with Base.metadata.create_all().
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ProductRecord(Base):
    """Product catalog - maps to the 'products' table."""
    __tablename__ = "products"
    __table_args__ = {"extend_existing": True}

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    image = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    subcategory = Column(String(255), nullable=True)
    delivery_time = Column(String(20), nullable=True)  # under-24h | 1-2-days | 3-5-days
    rating = Column(Numeric(3, 2, asdecimal=False), nullable=True)
    reviews_count = Column(Integer, nullable=True)
    is_featured = Column(Boolean, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_row(self) -> dict:
        """Plain dict in the same shape the REST API returns."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "image": self.image,
            "category": self.category,
            "subcategory": self.subcategory,
            "delivery_time": self.delivery_time,
            "rating": self.rating,
            "reviews_count": self.reviews_count,
            "is_featured": self.is_featured,
        }
