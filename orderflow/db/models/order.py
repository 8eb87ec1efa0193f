"""Order model: current state of one order, guarded by an integer version."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from orderflow.db.base import Base, JSONDocument


class OrderRecord(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    buyer_id = Column(String(255), nullable=False, index=True)
    order_state = Column(String(50), nullable=False, default="DRAFT", index=True)
    delivery_state = Column(String(50), nullable=False, default="NOT_STARTED")
    version = Column(Integer, nullable=False, default=0)  # optimistic concurrency guard

    product_type = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    fabric_type = Column(String(255), nullable=True)
    selected_color = Column(String(100), nullable=True)
    design_size = Column(String(100), nullable=True)
    buyer_notes = Column(Text, nullable=True)
    shipping_address = Column(Text, nullable=True)

    admin_notes = Column(Text, nullable=True)
    manufacturer_id = Column(String(255), nullable=True, index=True)
    payment_link = Column(Text, nullable=True)
    specs_locked = Column(Boolean, nullable=False, default=False)
    courier_name = Column(String(255), nullable=True)
    tracking_id = Column(String(255), nullable=True)

    sample_qc_video_url = Column(Text, nullable=True)
    bulk_qc_video_url = Column(Text, nullable=True)
    packaging_video_url = Column(Text, nullable=True)
    sample_qc = Column(JSONDocument, nullable=True)
    bulk_qc = Column(JSONDocument, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    admin_approved_at = Column(DateTime(timezone=True), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    manufacturer_accepted_at = Column(DateTime(timezone=True), nullable=True)
    payment_requested_at = Column(DateTime(timezone=True), nullable=True)
    payment_received_at = Column(DateTime(timezone=True), nullable=True)
    escrow_locked_at = Column(DateTime(timezone=True), nullable=True)
    specs_locked_at = Column(DateTime(timezone=True), nullable=True)
    sample_production_started_at = Column(DateTime(timezone=True), nullable=True)
    sample_qc_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    sample_approved_at = Column(DateTime(timezone=True), nullable=True)
    bulk_unlocked_at = Column(DateTime(timezone=True), nullable=True)
    bulk_production_started_at = Column(DateTime(timezone=True), nullable=True)
    bulk_qc_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    bulk_qc_approved_at = Column(DateTime(timezone=True), nullable=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    packed_at = Column(DateTime(timezone=True), nullable=True)
    pickup_scheduled_at = Column(DateTime(timezone=True), nullable=True)
    in_transit_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
