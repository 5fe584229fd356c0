"""
Session data model.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time


@dataclass
class SessionContext:
    """
    Metadata for one Conversation Relay session, filled in at setup.

    The generator and monitor live on the session handler; this object is
    what gets handed to tools and out-of-band lookups.
    """

    session_id: Optional[str] = None
    call_sid: Optional[str] = None
    call_reference: Optional[str] = None
    setup_data: Dict[str, Any] = field(default_factory=dict)
    parameter_data: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    initialized: bool = False
    closed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "call_sid": self.call_sid,
            "call_reference": self.call_reference,
            "created_at": self.created_at,
            "initialized": self.initialized,
            "closed": self.closed,
        }
