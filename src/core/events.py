"""Bus event names shared by both processes."""

from __future__ import annotations

# helper -> app: new entries were appended to the match queue
MATCHED = "matched"
# app -> helper: reload the shared rules file
RULES_UPDATED = "rules-updated"
# app -> helper: begin / suspend monitoring
START = "start"
STOP = "stop"
# helper -> app: liveness ping while monitoring
HEARTBEAT = "heartbeat"
