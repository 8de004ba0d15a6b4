"""Public result models shared by the exporter, importer and AI adapter."""

import logging
from typing import List, Optional

from pydantic import BaseModel

from canvasmap.codes import IssueCode


class MappingIssue(BaseModel):
    """A non-fatal problem found while compiling a mapping."""
    code: IssueCode
    message: str
    element_id: Optional[str] = None  # node, edge or target field the issue is about


def record_issue(
    warnings: Optional[List[MappingIssue]],
    logger: logging.Logger,
    code: IssueCode,
    message: str,
    element_id: Optional[str] = None,
) -> MappingIssue:
    """Log a soft failure and append it to ``warnings`` when a list is supplied."""
    issue = MappingIssue(code=code, message=message, element_id=element_id)
    logger.warning("[%s] %s", code.value, message)
    if warnings is not None:
        warnings.append(issue)
    return issue
