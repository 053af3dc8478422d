"""Working-hours SLA and escalation engine for grievance tickets."""
