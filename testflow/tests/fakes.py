# testflow/tests/fakes.py
from __future__ import annotations

from typing import Any, Dict, List, Tuple

from testflow.rendering import RenderError


class FakeRenderer:
    """
    Stand-in document renderer: records contexts and returns small PDF-like bytes.
    Set ``FakeRenderer.fail = True`` to make every render raise RenderError.
    """

    calls: List[Tuple[str, Dict[str, Any]]] = []
    fail = False

    def _render(self, kind: str, context: Dict[str, Any]) -> bytes:
        if FakeRenderer.fail:
            raise RenderError(f"{kind} layout unavailable")
        FakeRenderer.calls.append((kind, context))
        return f"%PDF-fake {kind}".encode("ascii")

    def render_ror(self, context):
        return self._render("ror", context)

    def render_proforma(self, context):
        return self._render("proforma", context)

    def render_report(self, context):
        return self._render("report", context)
