# testflow/workflows/guards.py

from typing import Iterable, List, Optional, Tuple

from django.core.exceptions import PermissionDenied
from django.db import models


class WorkflowWriteGuardMixin(models.Model):
    """
    Columns listed in WORKFLOW_FIELDS belong to the workflow engine.

    A plain save() that changes any of them is refused, whether it comes
    from intake code, the admin or a shell. The executor saves with
    ``_workflow_bypass=True`` after it has taken the row lock and
    checked its guards.
    """

    WORKFLOW_FIELDS: Tuple[str, ...] = ()

    class Meta:
        abstract = True

    def changed_workflow_fields(self, update_fields: Optional[Iterable[str]] = None) -> List[str]:
        """
        Workflow fields whose in-memory value differs from the stored row.
        With update_fields only those columns are compared.
        """
        watched = list(self.WORKFLOW_FIELDS)
        if update_fields is not None:
            wanted = set(update_fields)
            watched = [f for f in watched if f in wanted]
        if not watched or self._state.adding or self.pk is None:
            return []

        stored = type(self)._base_manager.filter(pk=self.pk).values(*watched).first()
        if stored is None:
            return []
        return [f for f in watched if stored[f] != getattr(self, f)]

    def save(self, *args, _workflow_bypass: bool = False, **kwargs):
        if not _workflow_bypass:
            changed = self.changed_workflow_fields(kwargs.get("update_fields"))
            if changed:
                raise PermissionDenied(
                    f"{type(self).__name__} {self.pk}: {', '.join(changed)} can only change "
                    "through workflow actions."
                )
        return super().save(*args, **kwargs)
