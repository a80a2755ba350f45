# application/services/inline_references.py
from __future__ import annotations
import os
import re
from typing import Mapping

from domain.models import Attachment

_PLACEHOLDER = re.compile(r"""=["'](ci?d:([\w.%*@-]+))["']""", re.IGNORECASE | re.ASCII)


def find_inline_placeholders(html: str | None) -> dict[str, str]:
    """{id_adjunto: "cid:id_adjunto"} para cada referencia interna del HTML."""
    if not html:
        return {}
    return {m.group(2): m.group(1) for m in _PLACEHOLDER.finditer(html)}


def resolve_inline_references(html: str | None, base_uri: str, attachments: Mapping[str, Attachment]) -> str:
    # Sustitución textual; no se parsea el HTML
    html = html or ""
    base_uri = base_uri.rstrip("\\/") + "/"
    for attachment_id, placeholder in find_inline_placeholders(html).items():
        att = attachments.get(attachment_id)
        if att is None or not att.file_path:
            continue
        html = html.replace(placeholder, base_uri + os.path.basename(att.file_path))
    return html
