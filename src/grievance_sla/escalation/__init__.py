"""
Escalation Module
=================

Bounded Context for working-hours SLA tracking and ticket escalation.

Responsibilities:
- Count elapsed working time over an organization calendar
- Derive ticket priority from working time and ticket attributes
- Escalate tickets automatically on wall-clock thresholds
- Manual escalation and de-escalation with an audit trail
- Decide who is notified and whether a closed ticket can be reopened
- Reload the calendar when the YAML config changes (watchdog)
"""

__version__ = "1.0.0"
