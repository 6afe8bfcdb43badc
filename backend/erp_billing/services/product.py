from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import Session, select

from erp_billing.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from erp_billing.models.product import Product
from erp_billing.models.subscription import Subscription
from erp_billing.schemas.product import ProductCreate, ProductUpdate
from erp_billing.services.numbering import NumberGenerator


class ProductService:
    def __init__(self, session: Session, numbers: NumberGenerator | None = None) -> None:
        self.session = session
        self.numbers = numbers or NumberGenerator(session)

    def list_products(self) -> list[Product]:
        return list(self.session.exec(select(Product).order_by(Product.name)).all())

    def get_product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found", product_id=str(product_id))
        return product

    def create_product(self, payload: ProductCreate) -> Product:
        name = payload.name.strip()
        if not name:
            raise InvalidArgumentError("Product name must not be empty")
        product = Product(
            product_number=self.numbers.product_number(),
            name=name,
            description=payload.description,
            price=payload.price,
            unit=payload.unit,
        )
        self.session.add(product)
        self.session.commit()
        self.session.refresh(product)
        return product

    def update_product(self, product_id: UUID, payload: ProductUpdate) -> Product:
        product = self.get_product(product_id)
        update_data = payload.model_dump(exclude_unset=True)
        if "name" in update_data and not (update_data["name"] or "").strip():
            raise InvalidArgumentError("Product name must not be empty")
        if "price" in update_data and update_data["price"] is None:
            update_data.pop("price")
        for key, value in update_data.items():
            setattr(product, key, value)
        product.updated_at = datetime.utcnow()
        self.session.add(product)
        self.session.commit()
        self.session.refresh(product)
        return product

    def delete_product(self, product_id: UUID) -> None:
        product = self.get_product(product_id)
        in_use = self.session.exec(select(Subscription.id).where(Subscription.product_id == product.id)).first()
        if in_use is not None:
            raise ConflictError("Product is referenced by subscriptions", product_number=product.product_number)
        self.session.delete(product)
        self.session.commit()
