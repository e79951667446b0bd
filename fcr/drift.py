from __future__ import annotations

from typing import Mapping


class ContentComparator:
    """Drift check on the raw rendered documents.

    Any byte difference counts, formatting included. Subclass and override
    `differs` for a semantic comparison.
    """

    def differs(self, stored: Mapping[str, str], rendered: Mapping[str, str]) -> bool:
        return dict(stored) != dict(rendered)
