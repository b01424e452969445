from __future__ import annotations

from typing import Optional

from anchornet.protocol.models import ContentHash, Operation

ROOT_ANCHOR = "mtype.anchor"
LINKED_ANCHOR = "mark.anchor"


class TransactionBuilder:
    """
    Builds unsigned anchor operations.

    - root anchor:   root_target(hash)
    - linked anchor: link_target(hash, parent, extra)

    extra is a reserved metadata slot and is None in every current caller.
    """

    def __init__(self, root_target: str = ROOT_ANCHOR, link_target: str = LINKED_ANCHOR) -> None:
        self.root_target = root_target
        self.link_target = link_target

    def build_anchor(
        self,
        hash: ContentHash,
        parent: Optional[ContentHash] = None,
        extra: Optional[ContentHash] = None,
    ) -> Operation:
        if parent is None:
            return Operation(self.root_target, (hash,))
        return Operation(self.link_target, (hash, parent, extra))
