from __future__ import annotations

from ..extensions import db
from pharmapos.time_utils import to_utc_z


class StoreSettings(db.Model):
    """
    Single-row store configuration edited at runtime.

    tax_rate_bps is the sales tax rate in basis points (1600 = 16.00%).
    """
    __tablename__ = "store_settings"
    __table_args__ = (
        db.CheckConstraint("tax_rate_bps >= 0 AND tax_rate_bps <= 10000", name="ck_store_settings_tax_rate"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(255), nullable=False, default="PharmaPOS")
    address = db.Column(db.Text, nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_name": self.company_name,
            "address": self.address,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_rate": f"{self.tax_rate_bps / 100:.2f}",
            "currency": self.currency,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
