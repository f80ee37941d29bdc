from datetime import datetime
from decimal import Decimal

from woapp.extensions import db
from woapp.readiness.ncr import NCRRecord, NCRStatus
from woapp.readiness.records import (
    BATCH_STATUS_IN_QUEUE,
    STAGE_PRODUCTION,
    BatchRecord,
    CartonRecord,
    DispatchRecord,
    ExternalMoveRecord,
    InventoryRecord,
    WorkOrderRecord,
)


def _number(value):
    """Numeric columns come back as Decimal; hand the core plain numbers."""

    if value is None:
        return None
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class WorkOrderStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ACTIVE_STATES = {PENDING, IN_PROGRESS, ON_HOLD}
    LABELS = {
        PENDING: "Pending",
        IN_PROGRESS: "In Progress",
        ON_HOLD: "On Hold",
        COMPLETED: "Completed",
        CANCELLED: "Cancelled",
    }


class WorkOrder(db.Model):
    __tablename__ = "work_order"

    id = db.Column(db.Integer, primary_key=True)
    wo_number = db.Column(db.String, unique=True, nullable=False)
    item_code = db.Column(db.String, nullable=True)
    customer_name = db.Column(db.String, nullable=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String, nullable=False, default=WorkOrderStatus.PENDING)
    current_stage = db.Column(db.String, nullable=True)
    qc_material_status = db.Column(db.String, nullable=True)
    qc_first_piece_status = db.Column(db.String, nullable=True)
    production_complete = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    version_id = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    batches = db.relationship(
        "ProductionBatch",
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="ProductionBatch.batch_number",
    )

    @property
    def status_label(self) -> str:
        return WorkOrderStatus.LABELS.get(self.status, self.status)

    @property
    def version(self) -> str | None:
        if self.updated_at is None:
            return None
        return self.updated_at.isoformat()

    def to_record(self) -> WorkOrderRecord:
        return WorkOrderRecord(
            id=self.id,
            ordered_qty=_number(self.quantity),
            material_qc_status=self.qc_material_status,
            first_piece_qc_status=self.qc_first_piece_status,
            item_code=self.item_code,
            status=self.status,
        )


class ProductionBatch(db.Model):
    __tablename__ = "production_batch"

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_order.id"), nullable=False, index=True
    )
    batch_number = db.Column(db.Integer, nullable=False, default=1)
    stage = db.Column(db.String, nullable=False, default=STAGE_PRODUCTION)
    status = db.Column(db.String, nullable=False, default=BATCH_STATUS_IN_QUEUE)
    batch_quantity = db.Column(db.Numeric(12, 2), nullable=True)
    produced_qty = db.Column(db.Numeric(12, 2), nullable=True)
    qc_approved_qty = db.Column(db.Numeric(12, 2), nullable=True)
    qc_rejected_qty = db.Column(db.Numeric(12, 2), nullable=True)
    dispatched_qty = db.Column(db.Numeric(12, 2), nullable=True)
    qc_final_status = db.Column(db.String, nullable=True)
    external_process_type = db.Column(db.String, nullable=True)
    external_partner_id = db.Column(db.Integer, nullable=True)
    production_complete = db.Column(db.Boolean, nullable=False, default=False)
    stage_entered_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    work_order = db.relationship("WorkOrder", back_populates="batches")

    def to_record(self) -> BatchRecord:
        return BatchRecord(
            id=self.id,
            work_order_id=self.work_order_id,
            batch_number=self.batch_number,
            stage=self.stage,
            status=self.status,
            batch_qty=_number(self.batch_quantity),
            produced_qty=_number(self.produced_qty),
            qc_approved_qty=_number(self.qc_approved_qty),
            qc_rejected_qty=_number(self.qc_rejected_qty),
            dispatched_qty=_number(self.dispatched_qty),
            qc_final_status=self.qc_final_status,
            external_process_type=self.external_process_type,
            external_partner_id=self.external_partner_id,
            production_complete=bool(self.production_complete),
            stage_entered_at=self.stage_entered_at,
            ended_at=self.ended_at,
        )


class Carton(db.Model):
    __tablename__ = "carton"

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_order.id"), nullable=False, index=True
    )
    batch_id = db.Column(db.Integer, db.ForeignKey("production_batch.id"), nullable=True)
    carton_number = db.Column(db.String, nullable=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=True)
    dispatched_qty = db.Column(db.Numeric(12, 2), nullable=True)
    packed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_record(self) -> CartonRecord:
        return CartonRecord(
            id=self.id,
            work_order_id=self.work_order_id,
            batch_id=self.batch_id,
            quantity=_number(self.quantity),
            dispatched_qty=_number(self.dispatched_qty),
        )


class Dispatch(db.Model):
    __tablename__ = "dispatch"

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_order.id"), nullable=False, index=True
    )
    carton_id = db.Column(db.Integer, db.ForeignKey("carton.id"), nullable=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=True)
    dispatched_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_record(self) -> DispatchRecord:
        return DispatchRecord(
            id=self.id,
            work_order_id=self.work_order_id,
            carton_id=self.carton_id,
            quantity=_number(self.quantity),
        )


class ExternalMove(db.Model):
    """Material sent to an outside processor (plating, heat treatment, ...)."""

    __tablename__ = "external_move"

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_order.id"), nullable=False, index=True
    )
    batch_id = db.Column(db.Integer, db.ForeignKey("production_batch.id"), nullable=True)
    partner_id = db.Column(db.Integer, nullable=True)
    process = db.Column(db.String, nullable=True)
    status = db.Column(db.String, nullable=True)
    quantity_sent = db.Column(db.Numeric(12, 2), nullable=True)
    quantity_returned = db.Column(db.Numeric(12, 2), nullable=True)
    dispatch_date = db.Column(db.Date, nullable=True)
    expected_return_date = db.Column(db.Date, nullable=True)
    returned_date = db.Column(db.Date, nullable=True)

    def to_record(self) -> ExternalMoveRecord:
        return ExternalMoveRecord(
            id=self.id,
            work_order_id=self.work_order_id,
            partner_id=self.partner_id,
            process=self.process,
            status=self.status,
            quantity_sent=_number(self.quantity_sent),
            quantity_returned=_number(self.quantity_returned),
            dispatch_date=self.dispatch_date,
            expected_return_date=self.expected_return_date,
            returned_date=self.returned_date,
        )


class FinishedGoodsInventory(db.Model):
    __tablename__ = "finished_goods_inventory"

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_order.id"), nullable=True, index=True
    )
    item_code = db.Column(db.String, nullable=True, index=True)
    quantity_available = db.Column(db.Numeric(12, 2), nullable=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_record(self) -> InventoryRecord:
        return InventoryRecord(
            work_order_id=self.work_order_id,
            item_code=self.item_code,
            quantity_available=_number(self.quantity_available),
        )


class NCR(db.Model):
    __tablename__ = "ncr"

    id = db.Column(db.Integer, primary_key=True)
    ncr_number = db.Column(db.String, unique=True, nullable=False)
    work_order_id = db.Column(db.Integer, db.ForeignKey("work_order.id"), nullable=True)
    title = db.Column(db.String, nullable=True)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String, nullable=False, default=NCRStatus.OPEN.value)
    disposition = db.Column(db.String, nullable=True)
    root_cause = db.Column(db.Text, nullable=True)
    corrective_action = db.Column(db.Text, nullable=True)
    preventive_action = db.Column(db.Text, nullable=True)
    effectiveness_check = db.Column(db.Text, nullable=True)
    effectiveness_verified = db.Column(db.Boolean, nullable=False, default=False)
    raised_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    closed_at = db.Column(db.DateTime, nullable=True)
    closed_by = db.Column(db.String, nullable=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    EDITABLE_FIELDS = (
        "title",
        "description",
        "disposition",
        "root_cause",
        "corrective_action",
        "preventive_action",
        "effectiveness_check",
        "effectiveness_verified",
    )

    def workflow_fields(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in self.EDITABLE_FIELDS}

    def to_record(self) -> NCRRecord:
        return NCRRecord(
            id=self.id,
            root_cause=self.root_cause,
            raised_at=self.raised_at,
            status=self.status,
        )

    def to_dict(self) -> dict[str, object]:
        data = {
            "id": self.id,
            "ncr_number": self.ncr_number,
            "work_order_id": self.work_order_id,
            "status": self.status,
            "raised_at": self.raised_at.isoformat() if self.raised_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "closed_by": self.closed_by,
        }
        data.update(self.workflow_fields())
        return data


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String, nullable=False)
    entity_type = db.Column(db.String, nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    actor = db.Column(db.String, nullable=True)
    details = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
