from sqlalchemy import Column, Integer, String, Numeric, JSON
from storefront.models.user import Base


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000))
    category = Column(String(100), index=True)
    brand = Column(String(100))
    price = Column(Numeric(10, 2), nullable=False)
    images = Column(JSON)  # List of URLs or paths, first one is the cover

    @property
    def cover_image(self):
        return (self.images or [None])[0]
