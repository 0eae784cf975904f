from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class SalesUser(Base):
    __tablename__ = "sales_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(200), unique=True)
    location: Mapped[Optional[str]] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(20), default="sales")
    allowed_customer_types: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quotations: Mapped[list["Quotation"]] = relationship(
        "Quotation", back_populates="owner", foreign_keys="Quotation.owner_sales_user_id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "location": self.location,
            "role": self.role,
            "allowedCustomerTypes": list(self.allowed_customer_types or []),
        }


class Quotation(Base):
    __tablename__ = "quotations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quotation_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    owner_sales_user_id: Mapped[int] = mapped_column(ForeignKey("sales_users.id"), index=True)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("sales_users.id"))
    customer_name: Mapped[str] = mapped_column(String(200))
    customer_email: Mapped[Optional[str]] = mapped_column(String(200))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    message: Mapped[Optional[str]] = mapped_column(Text)
    product_id: Mapped[str] = mapped_column(String(100))
    product_name: Mapped[str] = mapped_column(String(200))
    user_type: Mapped[str] = mapped_column(String(20), default="endUser")
    user_type_label: Mapped[str] = mapped_column(String(50), default="End User")
    product_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)
    pricing_breakdown: Mapped[dict] = mapped_column(JSON, default=dict)
    original_pricing_breakdown: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    discount: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    total_price: Mapped[int] = mapped_column(Integer, default=0)
    original_total_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner: Mapped[SalesUser] = relationship(
        "SalesUser", back_populates="quotations", foreign_keys=[owner_sales_user_id]
    )
    created_by: Mapped[SalesUser] = relationship("SalesUser", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "quotationId": self.quotation_id,
            "ownerSalesUserId": self.owner_sales_user_id,
            "createdById": self.created_by_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "message": self.message,
            "productId": self.product_id,
            "productName": self.product_name,
            "userType": self.user_type,
            "userTypeLabel": self.user_type_label,
            "productSnapshot": self.product_snapshot,
            "pricingBreakdown": self.pricing_breakdown,
            "originalPricingBreakdown": self.original_pricing_breakdown,
            "discount": self.discount,
            "totalPrice": self.total_price,
            "originalTotalPrice": self.original_total_price,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
