"""
Tag synchronization for DMS resources.

Tags live outside the endpoint's main settings and are reconciled with
their own calls.
"""

import logging
from typing import Dict, List

from remote import ControlPlane

logger = logging.getLogger(__name__)


def tags_to_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def tags_from_list(tag_list: List[Dict[str, str]]) -> Dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in tag_list}


class TagSynchronizer:
    """Makes a resource's remote tags equal a desired mapping."""

    def __init__(self, control_plane: ControlPlane):
        self.control_plane = control_plane

    async def fetch(self, remote_reference: str) -> Dict[str, str]:
        return tags_from_list(
            await self.control_plane.list_tags_for_resource(remote_reference)
        )

    async def sync(
        self,
        remote_reference: str,
        current: Dict[str, str],
        desired: Dict[str, str],
    ) -> bool:
        """
        Bring remote tags from ``current`` to ``desired``.

        Keys missing from ``desired`` are removed; keys that are new or have
        a different value are (re)added. Nothing is called when the two
        mappings are equal.

        Args:
            remote_reference: ARN of the tagged resource.
            current: Tags the resource has now.
            desired: Tags it should have.

        Returns:
            True if any remote call was made.
        """
        remove = sorted(k for k in current if k not in desired)
        add = {k: v for k, v in desired.items() if current.get(k) != v}

        if remove:
            logger.info(f"Removing tags {remove} from {remote_reference}")
            await self.control_plane.remove_tags_from_resource(remote_reference, remove)
        if add:
            logger.info(f"Setting tags {sorted(add)} on {remote_reference}")
            await self.control_plane.add_tags_to_resource(
                remote_reference, tags_to_list(add)
            )

        return bool(remove or add)
