"""
TenantModel — abstract base for every row that belongs to one organization.

Strategies, projects, actions and their child rows inherit from it so the
``tenant_id`` column, its FK and its index are declared once. Queries over
these tables always start from ``for_tenant`` so a listing can never forget
the organization filter.
"""

from sqlalchemy import select

from stratplan.models import db


class TenantModel(db.Model):
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def for_tenant(cls, tenant_id):
        """``SELECT`` over this table restricted to one organization."""
        return select(cls).where(cls.tenant_id == tenant_id)

    def belongs_to(self, tenant_id) -> bool:
        return self.tenant_id == tenant_id
