"""
Document grouping.

Clusters uploaded files that describe one financing (e.g. a term sheet and
the definitive SHA) so they are analysed with shared deal context.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .classifier import classify
from .constants import (
    CONVERTIBLE_INSTRUMENTS,
    CONVERTIBLE_MEMBERS,
    CONVERTIBLE_PRIMARY_ORDER,
    PRICED_EQUITY_MEMBERS,
    PRICED_EQUITY_PRIMARY_ORDER,
    DocumentSubtype,
    GroupCategory,
)
from .models import Document, DocumentGroup, DocumentInfo

logger = logging.getLogger(__name__)


def describe_documents(
    documents: Sequence[Document],
    texts: Optional[Dict[str, str]] = None,
) -> List[DocumentInfo]:
    """Classify each document by filename (and extracted text, when known)."""
    texts = texts or {}
    infos = []
    for document in documents:
        text = texts.get(document.filename)
        infos.append(DocumentInfo(
            document=document,
            subtype=classify(document.filename, text).subtype,
            extracted_text=text,
        ))
    return infos


def _pick_primary(members: List[DocumentInfo], priority: Sequence[DocumentSubtype]) -> str:
    for subtype in priority:
        for info in members:
            if info.subtype == subtype:
                return info.filename
    return members[0].filename


def group_documents(
    documents: Sequence[Document],
    texts: Optional[Dict[str, str]] = None,
) -> List[DocumentGroup]:
    """
    Group documents into deal bundles.

    Rules:
        - no documents: no groups
        - one document: a single standalone group
        - any SPA or SHA present: every SPA, SHA, IRA, voting agreement,
          articles/charter, disclosure schedule and term sheet forms one
          priced_equity_bundle (primary: SPA > SHA > term sheet > first)
        - any SAFE, convertible note or CLA left ungrouped: those plus any
          ungrouped side letters form one convertible_bundle
          (primary: SAFE > note > CLA > first)
        - everything else: one standalone group each

    Groups are returned bundles first, then standalone groups in upload order.

    Args:
        documents: Uploaded documents in upload order
        texts: Optional extracted text keyed by filename

    Returns:
        List of DocumentGroup
    """
    infos = describe_documents(documents, texts)
    if not infos:
        return []
    if len(infos) == 1:
        return [DocumentGroup(
            group_id='group-1',
            category=GroupCategory.STANDALONE,
            documents=infos,
            primary=infos[0].filename,
        )]

    groups: List[DocumentGroup] = []
    grouped = set()

    def add_group(category: GroupCategory, members: List[DocumentInfo], primary: str) -> None:
        groups.append(DocumentGroup(
            group_id=f'group-{len(groups) + 1}',
            category=category,
            documents=members,
            primary=primary,
        ))
        grouped.update(id(info) for info in members)

    subtypes = {info.subtype for info in infos}
    if DocumentSubtype.SPA in subtypes or DocumentSubtype.SHA in subtypes:
        members = [info for info in infos if info.subtype in PRICED_EQUITY_MEMBERS]
        add_group(GroupCategory.PRICED_EQUITY_BUNDLE, members,
                  _pick_primary(members, PRICED_EQUITY_PRIMARY_ORDER))

    remaining = [info for info in infos if id(info) not in grouped]
    if any(info.subtype in CONVERTIBLE_INSTRUMENTS for info in remaining):
        members = [info for info in remaining if info.subtype in CONVERTIBLE_MEMBERS]
        add_group(GroupCategory.CONVERTIBLE_BUNDLE, members,
                  _pick_primary(members, CONVERTIBLE_PRIMARY_ORDER))

    for info in infos:
        if id(info) not in grouped:
            add_group(GroupCategory.STANDALONE, [info], info.filename)

    logger.info(
        "Grouped %d documents into %d groups (%s)",
        len(infos), len(groups), ", ".join(group.category.value for group in groups),
    )
    return groups


def group_index(groups: Sequence[DocumentGroup]) -> Dict[str, DocumentGroup]:
    """
    Map each filename to the group that contains it.

    When two uploads share a filename the first one keeps the entry.
    """
    index: Dict[str, DocumentGroup] = {}
    for group in groups:
        for info in group.documents:
            if info.filename in index:
                logger.warning("Duplicate filename %s in upload; keeping its first group (%s)",
                               info.filename, index[info.filename].group_id)
                continue
            index[info.filename] = group
    return index
