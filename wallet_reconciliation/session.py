"""
Session Store - Persisted avatar and wallet selection.

The store is empty and un-hydrated until hydrate() has read the
persistence file. Consumers check `hydrated` before trusting `state`.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Selection that survives restarts."""

    avatar_id: Optional[str] = None
    selected_wallet_id: Optional[str] = None
    saved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "avatar_id": self.avatar_id,
            "selected_wallet_id": self.selected_wallet_id,
            "saved_at": self.saved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        """Deserialize from dictionary."""
        saved_at = data.get("saved_at")
        return cls(
            avatar_id=data.get("avatar_id"),
            selected_wallet_id=data.get("selected_wallet_id"),
            saved_at=datetime.fromisoformat(saved_at) if saved_at else datetime.now(timezone.utc),
        )


class SessionStore:
    """
    JSON-file session persistence with an explicit hydration step.

    Without a path the store keeps state in memory only.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._path = persistence_path
        self._state = SessionState()
        self._hydrated = False
        self._lock = asyncio.Lock()

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    @property
    def state(self) -> SessionState:
        return self._state

    async def hydrate(self) -> SessionState:
        """
        Restore state from the persistence file.

        A missing or unreadable file yields an empty session; either way
        the store is hydrated afterwards.
        """
        if self._path and self._path.exists():
            try:
                with open(self._path, "r") as f:
                    self._state = SessionState.from_dict(json.load(f))
                logger.info(f"Session restored for avatar {self._state.avatar_id}")
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Failed to restore session from {self._path}: {e}")
                self._state = SessionState()
        self._hydrated = True
        return self._state

    async def update(self, **changes: Any) -> SessionState:
        """Apply field changes and persist."""
        async with self._lock:
            for name, value in changes.items():
                if not hasattr(self._state, name):
                    raise AttributeError(f"Unknown session field: {name}")
                setattr(self._state, name, value)
            self._state.saved_at = datetime.now(timezone.utc)
            await self._persist()
        return self._state

    async def clear(self) -> None:
        """Forget the session (sign-out)."""
        async with self._lock:
            self._state = SessionState()
            await self._persist()

    async def _persist(self) -> None:
        if not self._path:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w") as f:
                json.dump(self._state.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to persist session: {e}")
