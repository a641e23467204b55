from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, getcontext
from sqlalchemy.types import TypeDecorator, Numeric as SA_Numeric
import logging


db = SQLAlchemy()

getcontext().prec = 28


class Money(TypeDecorator):
    """
    SQLAlchemy TypeDecorator to store Decimal values in a NUMERIC/DECIMAL column.
    - Python value: decimal.Decimal (quantized to 2 decimal places, ROUND_HALF_UP)
    - DB value: Decimal stored in NUMERIC(18,2)
    """
    impl = SA_Numeric(precision=18, scale=2)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            try:
                # Use str() to avoid binary-float surprises
                value = Decimal(str(value))
            except Exception:
                raise ValueError(f"Cannot convert {value!r} to Decimal")
        return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            if isinstance(value, Decimal):
                return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
            return Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        except Exception as e:
            logging.exception("Money.process_result_value: failed to parse DB value %r (type=%s): %s", value, type(value), e)
            return Decimal('0.00')

    @property
    def python_type(self):
        return Decimal


class AuditLog(db.Model):
    """Local trail of every document and payment submitted to the remote books."""
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(255), nullable=False)
    # invoice / estimate / bill / invoice_payment / bill_payment
    ref_type = db.Column(db.String(30), nullable=True)
    ref_id = db.Column(db.Integer, nullable=True)
    amount = db.Column(Money(), nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    ip_address = db.Column(db.String(45))

    def __repr__(self):
        return f'<AuditLog {self.timestamp} - company {self.company_id}: {self.action}>'

    __table_args__ = (
        db.Index('idx_auditlog_company', 'company_id'),
        db.Index('idx_auditlog_timestamp', 'timestamp'),
    )
