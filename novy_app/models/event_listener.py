from sqlalchemy import event
from sqlalchemy.orm import Session

from .models import AuditLog, OwnerAuthorization


class ImmutableRowError(RuntimeError):
    pass


@event.listens_for(AuditLog, "before_update")
def refuse_audit_update(mapper, connection, target: AuditLog):
    raise ImmutableRowError(f"audit log {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def refuse_audit_delete(mapper, connection, target: AuditLog):
    raise ImmutableRowError(f"audit log {target.id} is append-only")


@event.listens_for(Session, "do_orm_execute")
def refuse_bulk_audit_mutation(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if any(m.class_ is AuditLog for m in orm_execute_state.all_mappers):
        raise ImmutableRowError("audit logs are append-only")


@event.listens_for(OwnerAuthorization, "before_insert")
def normalize_owner_email(mapper, connection, target: OwnerAuthorization):
    if target.owner_email:
        target.owner_email = target.owner_email.strip().lower()
