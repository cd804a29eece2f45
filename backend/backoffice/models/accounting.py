from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class ChartOfAccount(db.Model):
    __tablename__ = "chart_of_accounts"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_chart_of_accounts_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(32), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    alias = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "name": self.name,
            "alias": self.alias,
        }


class SettingJournal(db.Model):
    """
    Feature account mapping.

    WHY: Posting needs a counter account for each economic event. The
    (feature, name) pair names the event, e.g. ("stock correction",
    "difference stock expenses") or ("sales", "account receivable").
    A missing row aborts the posting.
    """
    __tablename__ = "setting_journals"
    __table_args__ = (
        db.UniqueConstraint("feature", "name", name="uq_setting_journals_feature_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    feature = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    chart_of_account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=True)

    account = db.relationship("ChartOfAccount")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "feature": self.feature,
            "name": self.name,
            "chart_of_account_id": self.chart_of_account_id,
        }


class Journal(db.Model):
    """
    One leg of a double-entry posting.

    DESIGN:
    - Exactly one of debit_cents/credit_cents is non-zero
    - Every posting writes a balanced pair (or balanced set) under one form
    - journalable_type/journalable_id name the subject (e.g. Item, Customer)
    - Rows are removed only by reversing the whole form
    """
    __tablename__ = "journals"
    __table_args__ = (
        db.Index("ix_journals_form", "form_id"),
        db.Index("ix_journals_subject", "journalable_type", "journalable_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    form_id = db.Column(db.Integer, db.ForeignKey("forms.id"), nullable=False)
    journalable_type = db.Column(db.String(64), nullable=True)
    journalable_id = db.Column(db.Integer, nullable=True)
    chart_of_account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=False, index=True)

    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    form = db.relationship("Form", backref=db.backref("journals", lazy=True))
    account = db.relationship("ChartOfAccount")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "form_id": self.form_id,
            "journalable_type": self.journalable_type,
            "journalable_id": self.journalable_id,
            "chart_of_account_id": self.chart_of_account_id,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "created_at": to_utc_z(self.created_at),
        }
